import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from outbox import (
    ADD_FIELDS,
    REMOVE_FIELDS,
    SWITCH_COMPLEX_TAB,
    CommandValidationError,
    Outbox,
    make_command,
)


class TestOutbox(unittest.TestCase):
    def test_enqueue_pending_order(self) -> None:
        outbox = Outbox()
        c1 = make_command(ADD_FIELDS, {"fields": {}})
        c2 = make_command(SWITCH_COMPLEX_TAB, {"field_id": "f1", "group_id": None})
        outbox.enqueue(c1)
        outbox.enqueue(c2)
        self.assertEqual([p["name"] for p in outbox.pending()], [ADD_FIELDS, SWITCH_COMPLEX_TAB])

    def test_ack(self) -> None:
        outbox = Outbox()
        command = make_command(REMOVE_FIELDS, {"ids": ["a"]})
        outbox.enqueue(command)
        self.assertTrue(outbox.ack(command["command_id"]))
        self.assertEqual(outbox.pending(), [])
        self.assertFalse(outbox.ack(command["command_id"]))

    def test_drain_empties_queue(self) -> None:
        outbox = Outbox()
        outbox.enqueue(make_command(REMOVE_FIELDS, {"ids": ["a"]}))
        drained = outbox.drain()
        self.assertEqual(len(drained), 1)
        self.assertEqual(outbox.pending(), [])

    def test_unknown_command_rejected(self) -> None:
        with self.assertRaises(CommandValidationError):
            make_command("fields.explode", {})

    def test_missing_payload_key_rejected(self) -> None:
        with self.assertRaises(CommandValidationError) as ctx:
            make_command(SWITCH_COMPLEX_TAB, {"field_id": "f1"})
        self.assertEqual(ctx.exception.path, "payload.group_id")

    def test_enqueue_copies_command(self) -> None:
        outbox = Outbox()
        command = make_command(REMOVE_FIELDS, {"ids": ["a"]})
        outbox.enqueue(command)
        command["payload"]["ids"].append("b")
        self.assertEqual(outbox.pending()[0]["payload"]["ids"], ["a"])


if __name__ == "__main__":
    unittest.main()
