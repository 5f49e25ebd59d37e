from datetime import date
from decimal import Decimal

from django.test import SimpleTestCase, TestCase, override_settings

from front_desk.exceptions import ValidationError
from front_desk.pricing import compute_total, nights_between, quote_total, to_amount, validate_stay

from .factories import JUNE_10, JUNE_13, make_room


class ComputeTotalTestCase(SimpleTestCase):

    def test_three_nights_at_150(self):
        self.assertEqual(compute_total(Decimal("150.00"), JUNE_10, JUNE_13), Decimal("450.00"))

    def test_single_night_at_100(self):
        self.assertEqual(compute_total(Decimal("100.00"), date(2024, 6, 10), date(2024, 6, 11)), Decimal("100.00"))

    def test_rounds_half_up_to_cents(self):
        """10.005 would round down under banker's rounding"""
        self.assertEqual(compute_total(Decimal("10.005"), JUNE_10, date(2024, 6, 11)), Decimal("10.01"))

    def test_stay_across_month_end(self):
        self.assertEqual(nights_between(date(2024, 6, 28), date(2024, 7, 2)), 4)

    def test_rejects_zero_and_negative_nights(self):
        for check_out in (JUNE_10, date(2024, 6, 9)):
            with self.subTest(check_out=check_out):
                with self.assertRaises(ValidationError):
                    compute_total(Decimal("100.00"), JUNE_10, check_out)

    def test_rejects_non_numeric_rate(self):
        for rate in ("abc", None, ""):
            with self.subTest(rate=rate):
                with self.assertRaises(ValidationError):
                    compute_total(rate, JUNE_10, JUNE_13)

    def test_rejects_non_positive_rate(self):
        for rate in (Decimal("0"), Decimal("-5.00")):
            with self.subTest(rate=rate):
                with self.assertRaises(ValidationError):
                    compute_total(rate, JUNE_10, JUNE_13)


class ValidationHelpersTestCase(SimpleTestCase):

    def test_validate_stay_requires_check_out_after_check_in(self):
        validate_stay(JUNE_10, JUNE_13)
        with self.assertRaises(ValidationError):
            validate_stay(JUNE_10, JUNE_10)

    def test_validate_stay_requires_dates(self):
        with self.assertRaises(ValidationError):
            validate_stay("2024-06-10", JUNE_13)

    def test_to_amount(self):
        self.assertEqual(to_amount("12.345"), Decimal("12.35"))
        with self.assertRaises(ValidationError):
            to_amount("twelve")


class QuoteTotalTestCase(TestCase):

    def setUp(self):
        self.room = make_room(rate="150.00")

    def test_quote_matches_compute_total(self):
        self.assertEqual(quote_total(self.room, JUNE_10, JUNE_13), Decimal("450.00"))

    @override_settings(FRONT_DESK={"SERVER_SIDE_CALCULATIONS": True})
    def test_database_quote_matches_client_quote(self):
        """The database-side total gives the same amount as the Python one"""
        self.assertEqual(quote_total(self.room, JUNE_10, JUNE_13), Decimal("450.00"))
