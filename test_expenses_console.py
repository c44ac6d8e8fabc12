import io
import unittest
from contextlib import redirect_stdout
from decimal import Decimal
from unittest import mock

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import expenses_console
from payment_store import NotFoundError, PaymentStore, StorageError

RAW = {
    "account_category": "variable cost",
    "payee": "Courier",
    "amount": "100",
    "payment_month": "2099-05",
    "payment_method": "bank transfer",
}


class ExpensesConsoleTests(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        self.store = PaymentStore(self.engine)
        self.store.create_schema()

    def tearDown(self):
        self.engine.dispose()

    def _quiet(self, fn, *args):
        out = io.StringIO()
        with redirect_stdout(out):
            result = fn(*args)
        return result, out.getvalue()

    def test_add_payment(self):
        new_id, out = self._quiet(expenses_console.add_payment, self.store, RAW)
        self.assertIsNotNone(new_id)
        self.assertIn("Added payment", out)
        self.assertEqual(self.store.get(new_id).payee, "Courier")

    def test_add_payment_prints_every_error(self):
        new_id, out = self._quiet(expenses_console.add_payment, self.store, dict(RAW, amount="x", payee=""))
        self.assertIsNone(new_id)
        self.assertIn("payee is required", out)
        self.assertIn("amount must be numeric", out)
        self.assertEqual(self.store.list_all(), [])

    def test_delete_payment(self):
        new_id, _ = self._quiet(expenses_console.add_payment, self.store, RAW)
        ok, out = self._quiet(expenses_console.delete_payment, self.store, str(new_id))
        self.assertTrue(ok)
        with self.assertRaises(NotFoundError):
            self.store.get(new_id)
        ok, out = self._quiet(expenses_console.delete_payment, self.store, "abc")
        self.assertFalse(ok)
        ok, out = self._quiet(expenses_console.delete_payment, self.store, "4242")
        self.assertFalse(ok)
        self.assertIn("No payment with id 4242", out)

    def test_payments_frame(self):
        self._quiet(expenses_console.add_payment, self.store, RAW)
        self._quiet(expenses_console.add_payment, self.store, dict(RAW, payee="Second"))
        df = expenses_console.payments_frame(self.store)
        self.assertEqual(list(df.columns), ["id", *expenses_console.FIELDS])
        self.assertEqual(list(df["payee"]), ["Second", "Courier"])

    def test_totals_frame_pivots_by_category(self):
        self._quiet(expenses_console.add_payment, self.store, RAW)
        self._quiet(expenses_console.add_payment, self.store, dict(RAW, amount="250"))
        self._quiet(
            expenses_console.add_payment,
            self.store,
            dict(RAW, account_category="administrative expense", amount="5", payment_month="2099-06"),
        )
        df = expenses_console.totals_frame(self.store)
        self.assertEqual(df.loc["2099-05", "variable cost"], Decimal("350"))
        self.assertEqual(df.loc["2099-06", "administrative expense"], Decimal("5"))

    def test_empty_frames(self):
        self.assertTrue(expenses_console.payments_frame(self.store).empty)
        self.assertTrue(expenses_console.totals_frame(self.store).empty)
        _, out = self._quiet(expenses_console.show_frame, "Monthly totals", expenses_console.totals_frame(self.store))
        self.assertIn("nothing to show", out)

    def test_main_exits_when_schema_cannot_be_created(self):
        failure = StorageError("could not create table payments")
        with mock.patch.object(PaymentStore, "create_schema", side_effect=failure), mock.patch.object(
            expenses_console, "load_dotenv"
        ):
            with self.assertRaises(SystemExit) as ctx:
                self._quiet(expenses_console.main, ["--database", "sqlite:///:memory:"])
        self.assertEqual(ctx.exception.code, 1)

    def test_main_loop(self):
        answers = ["1", *RAW.values(), "2", "3", "9", "5"]
        with mock.patch("builtins.input", side_effect=answers), mock.patch.object(expenses_console, "load_dotenv"):
            _, out = self._quiet(expenses_console.main, ["--database", "sqlite:///:memory:"])
        self.assertIn("Added payment", out)
        self.assertIn("Monthly totals:", out)
        self.assertIn("Unknown command", out)
        self.assertIn("Goodbye", out)


if __name__ == "__main__":
    unittest.main()
