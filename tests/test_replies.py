"""Tests for famcal.core.replies — commands, reply classifier, German templates."""

import pytest

from famcal.core import replies
from famcal.core.parser import CalendarEntities, CalendarIntent
from famcal.core.replies import ReplyKind, classify_reply, detect_command
from famcal.data.models import AWAITING_CONFLICT_CONFIRMATION, AWAITING_DELETE_SCOPE
from famcal.ports.calendar_port import CalendarErrorKind, Recurrence

TZ = "Europe/Berlin"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestDetectCommand:
    @pytest.mark.parametrize("text", ["hilfe", "  Hilfe ", "HELP", "?"])
    def test_help(self, text):
        assert detect_command(text) == "help"

    @pytest.mark.parametrize("text", ["abbrechen", "Cancel", "reset "])
    def test_cancel(self, text):
        assert detect_command(text) == "cancel"

    @pytest.mark.parametrize("text", ["hilfe bitte", "Zahnarzt abbrechen", "was kannst du?"])
    def test_not_exact(self, text):
        assert detect_command(text) is None


# ---------------------------------------------------------------------------
# Reply classifier
# ---------------------------------------------------------------------------


class TestClassifyConflictReply:
    @pytest.mark.parametrize("text", ["Ja", "ok!", "ja, trotzdem", "Klar"])
    def test_affirmative(self, text):
        assert classify_reply(text, AWAITING_CONFLICT_CONFIRMATION) is ReplyKind.AFFIRMATIVE

    @pytest.mark.parametrize("text", ["nein", "Nee danke", "ja, lieber doch nicht"])
    def test_negative_wins(self, text):
        assert classify_reply(text, AWAITING_CONFLICT_CONFIRMATION) is ReplyKind.NEGATIVE

    def test_unknown(self):
        assert classify_reply("vielleicht", AWAITING_CONFLICT_CONFIRMATION) is ReplyKind.UNKNOWN


class TestClassifyDeleteScopeReply:
    @pytest.mark.parametrize("text", ["1", "Nur dieses Mal", "diesen"])
    def test_this_only(self, text):
        assert classify_reply(text, AWAITING_DELETE_SCOPE) is ReplyKind.THIS_ONLY

    @pytest.mark.parametrize("text", ["2", "Alle zukünftigen", "die ganze Serie"])
    def test_all_future(self, text):
        assert classify_reply(text, AWAITING_DELETE_SCOPE) is ReplyKind.ALL_FUTURE

    @pytest.mark.parametrize("text", ["1 oder 2", "keine Ahnung"])
    def test_ambiguous_or_unknown(self, text):
        assert classify_reply(text, AWAITING_DELETE_SCOPE) is ReplyKind.UNKNOWN

    def test_nothing_awaited(self):
        assert classify_reply("ja", None) is ReplyKind.UNKNOWN


class TestRequiresClarification:
    def test_low_confidence_uses_fallback(self):
        intent = CalendarIntent(intent="create_event", entities=CalendarEntities(), confidence=0.4)
        assert replies.requires_clarification(intent, "Fallback?") == "Fallback?"

    def test_model_question_preferred(self):
        intent = CalendarIntent(
            intent="create_event", entities=CalendarEntities(),
            confidence=0.5, clarification_needed="Wann denn?",
        )
        assert replies.requires_clarification(intent, "Fallback?") == "Wann denn?"

    def test_confident_intent(self):
        intent = CalendarIntent(intent="create_event", entities=CalendarEntities(), confidence=0.9)
        assert replies.requires_clarification(intent, "Fallback?") is None


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


class TestTemplates:
    def test_greeting(self):
        assert replies.greeting("Anna").startswith("Hey Anna!")
        assert replies.greeting(None).startswith("Hey!")

    def test_free_day(self):
        assert replies.day_overview("2026-10-20", [], TZ) == "Dienstag ist frei!"

    def test_day_overview(self, make_event):
        events = [
            make_event("Zahnarzt"),
            make_event("Urlaub", "2026-10-20", "2026-10-21", "b", all_day=True),
        ]
        assert replies.day_overview("2026-10-20", events, TZ) == "10:00 - Zahnarzt | Urlaub"

    def test_range_overview(self, make_event):
        text = replies.range_overview(
            [("2026-10-20", [make_event("Zahnarzt")]), ("2026-10-21", [])], TZ,
        )
        assert text == "Dienstag: 10:00 - Zahnarzt\nMittwoch: frei"

    def test_created_all_day_range(self):
        text = replies.created_all_day("Urlaub", "2026-07-03", "2026-07-07")
        assert text == "Klar, hab ich eingetragen! Urlaub, 3. Juli bis 7. Juli (ganztägig)"

    def test_created_all_day_single(self):
        text = replies.created_all_day("Oma Geburtstag", "2026-11-02", "2026-11-02")
        assert text == "Klar, hab ich eingetragen! Oma Geburtstag, 2. Nov (ganztägig)"

    def test_created_event(self, make_event):
        event = make_event("Zahnarzt", "2026-10-20T15:00:00+02:00", "2026-10-20T16:00:00+02:00")
        text = replies.created_event("Zahnarzt", "2026-10-20", event, TZ)
        assert text == "Klar, hab ich eingetragen! Zahnarzt, Dienstag 15:00-16:00"

    def test_created_recurring_with_end(self, make_event):
        event = make_event("Fußball", "2026-10-20T17:00:00+02:00", "2026-10-20T18:00:00+02:00")
        text = replies.created_recurring(
            "Fußball", Recurrence("WEEKLY", "TU", "2026-12-31"), event,
            ["20.10", "27.10", "03.11"], TZ,
        )
        assert text == (
            "Fußball jeden Dienstag um 17:00 erstellt. Nächste: 20.10, 27.10, 03.11"
            " Endet: 31.12.2026"
        )

    @pytest.mark.parametrize("recurrence, pattern", [
        (Recurrence("DAILY"), "täglich"),
        (Recurrence("WEEKLY"), "wöchentlich"),
        (Recurrence("MONTHLY"), "monatlich"),
    ])
    def test_recurrence_pattern(self, recurrence, pattern):
        assert replies.recurrence_pattern(recurrence) == pattern

    def test_conflict_prompt(self, make_event):
        text = replies.conflict_prompt([make_event("Zahnarzt")], TZ)
        assert text == "Achtung: Überschneidung mit Zahnarzt um 10:00 Uhr. Trotzdem erstellen?"

    def test_candidate_list_is_numbered_in_order(self, make_event):
        candidates = [
            make_event("Meeting", "2026-10-20T10:00:00+02:00", "2026-10-20T11:00:00+02:00", "a"),
            make_event("Meeting", "2026-10-20T14:00:00+02:00", "2026-10-20T15:00:00+02:00", "b"),
        ]
        assert replies.candidate_list(candidates, TZ) == (
            "Welchen meinst du?\n1) Meeting 10:00\n2) Meeting 14:00"
        )

    def test_updated(self, make_event):
        event = make_event("Zahnarzt", "2026-10-20T16:00:00+02:00", "2026-10-20T17:00:00+02:00")
        assert replies.updated(event, TZ) == "Geändert: Zahnarzt jetzt Dienstag 16:00"

    def test_deleted(self, make_event):
        assert replies.deleted(make_event("Zahnarzt"), TZ) == (
            "Erledigt! Zahnarzt am Dienstag wurde gelöscht."
        )

    def test_deleted_all_future(self):
        assert replies.deleted_all_future("2026-10-27") == (
            "Alle zukünftigen Termine ab 27.10. gelöscht."
        )

    @pytest.mark.parametrize("kind", list(CalendarErrorKind))
    def test_every_error_kind_has_a_sentence(self, kind):
        message = replies.calendar_error_message(kind)
        assert message
        assert "HttpError" not in message
