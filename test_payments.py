import unittest
from decimal import Decimal

from payments import (
    AMOUNT_SIZE_MSG,
    AccountCategory,
    Payment,
    PaymentMethod,
    PaymentRecord,
    ValidationError,
    validate,
    validate_or_raise,
)

VALID = {
    "account_category": "variable cost",
    "payee": "Office Depot",
    "amount": "1234.56",
    "payment_month": "2024-01",
    "payment_method": "credit card",
}


def _with(**overrides):
    data = dict(VALID)
    data.update(overrides)
    return data


def _messages(result):
    return [e.msg for e in result.errors]


class ValidateTests(unittest.TestCase):
    def test_valid_input_is_normalized(self):
        result = validate(VALID)
        self.assertTrue(result.ok)
        self.assertEqual(result.errors, [])
        self.assertEqual(
            result.record,
            PaymentRecord(
                account_category=AccountCategory.VARIABLE_COST,
                payee="Office Depot",
                amount=Decimal("1234.56"),
                payment_month="2024-01",
                payment_method=PaymentMethod.CREDIT_CARD,
            ),
        )

    def test_whitespace_is_stripped(self):
        result = validate(_with(payee="  Rent Co  ", amount=" 10 "))
        self.assertTrue(result.ok)
        self.assertEqual(result.record.payee, "Rent Co")
        self.assertEqual(result.record.amount, Decimal("10"))

    def test_all_rules_run_without_short_circuit(self):
        result = validate(
            {
                "account_category": "",
                "payee": "",
                "amount": "abc",
                "payment_month": "2024-13",
                "payment_method": "cash",
            }
        )
        self.assertFalse(result.ok)
        self.assertIsNone(result.record)
        self.assertGreaterEqual(len(result.errors), 5)
        self.assertEqual(
            _messages(result),
            [
                "account_category is required",
                "account_category has an invalid value",
                "payee is required",
                "amount must be numeric",
                "payment_month must be in YYYY-MM format",
                "payment_method has an invalid value",
            ],
        )

    def test_missing_fields_each_report_required(self):
        result = validate({})
        required = [e.field for e in result.errors if e.msg.endswith("is required")]
        self.assertEqual(
            required, ["account_category", "payee", "amount", "payment_month", "payment_method"]
        )

    def test_empty_field_reports_both_rules(self):
        result = validate(_with(amount=""))
        self.assertEqual(_messages(result), ["amount is required", "amount must be numeric"])
        self.assertTrue(all(e.field == "amount" for e in result.errors))

    def test_blank_payee_is_required(self):
        result = validate(_with(payee="   "))
        self.assertEqual(_messages(result), ["payee is required"])

    def test_amount_rules(self):
        for ok in ("1234.56", "0", "-5", "+7", ".5", "100"):
            with self.subTest(amount=ok):
                self.assertTrue(validate(_with(amount=ok)).ok)
        for bad in ("abc", "", "1.", ".", "-", "1,000", "1e3", "12.3.4"):
            with self.subTest(amount=bad):
                self.assertIn("amount must be numeric", _messages(validate(_with(amount=bad))))

    def test_amount_must_fit_the_column(self):
        for ok in ("999999999999.99", "000000000000001.5", "-12.3", "0.01"):
            with self.subTest(amount=ok):
                self.assertTrue(validate(_with(amount=ok)).ok)
        for bad in ("0.004", "12345678901234567.89", "1" + "0" * 30, "1234567890123", "1.999"):
            with self.subTest(amount=bad):
                result = validate(_with(amount=bad))
                self.assertFalse(result.ok)
                self.assertEqual(_messages(result), [AMOUNT_SIZE_MSG])
                self.assertEqual(result.errors[0].field, "amount")

    def test_non_numeric_amount_skips_size_rule(self):
        self.assertEqual(_messages(validate(_with(amount="abc"))), ["amount must be numeric"])

    def test_payment_month_rules(self):
        for ok in ("2024-01", "1999-12"):
            with self.subTest(month=ok):
                self.assertTrue(validate(_with(payment_month=ok)).ok)
        for bad in ("2024-1", "24-01", "2024/01", "2024-00", "2024-13", "2024-01-01"):
            with self.subTest(month=bad):
                self.assertIn(
                    "payment_month must be in YYYY-MM format",
                    _messages(validate(_with(payment_month=bad))),
                )

    def test_enums_are_closed(self):
        result = validate(_with(account_category="販管費", payment_method="Credit Card"))
        self.assertEqual(
            _messages(result),
            ["account_category has an invalid value", "payment_method has an invalid value"],
        )

    def test_non_string_values_from_json(self):
        result = validate(_with(amount=250))
        self.assertTrue(result.ok)
        self.assertEqual(result.record.amount, Decimal("250"))

    def test_error_dict_shape(self):
        err = validate(_with(payment_method="cash")).errors[0]
        self.assertEqual(
            err.to_dict(),
            {
                "type": "field",
                "path": "payment_method",
                "value": "cash",
                "msg": "payment_method has an invalid value",
                "location": "body",
            },
        )

    def test_validate_or_raise(self):
        self.assertEqual(validate_or_raise(VALID).payee, "Office Depot")
        with self.assertRaises(ValidationError) as ctx:
            validate_or_raise(_with(payee=""))
        self.assertEqual([e.field for e in ctx.exception.errors], ["payee"])


class PaymentTypeTests(unittest.TestCase):
    def test_labels(self):
        self.assertEqual(AccountCategory.ADMINISTRATIVE_EXPENSE.label, "販管費")
        self.assertEqual(PaymentMethod.DIRECT_DEBIT.label, "口座振替")

    def test_payment_record_and_form(self):
        record = validate_or_raise(VALID)
        payment = Payment(id=3, **vars(record))
        self.assertEqual(payment.record, record)
        self.assertEqual(payment.as_form(), VALID)

    def test_payment_needs_an_id(self):
        record = validate_or_raise(VALID)
        with self.assertRaises(TypeError):
            Payment(**vars(record))


if __name__ == "__main__":
    unittest.main()
