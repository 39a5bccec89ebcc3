import unittest
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal

from machine_market.tests.helpers import MarketTestCase, auth_headers
from machine_market.models.market_models import Rental
from machine_market.services.errors import InvalidInputError
from machine_market.services.rental_service import (
    PLATFORM_FEE_RATE,
    RENTAL_STATUS_TRANSITIONS,
    compute_rental_pricing,
    parse_rental_date,
    rental_days,
)


class RentalPricingTests(unittest.TestCase):
    def test_four_day_rental_at_one_thousand(self):
        pricing = compute_rental_pricing(date(2025, 1, 1), date(2025, 1, 5), Decimal("1000"))
        self.assertEqual(pricing.days, 4)
        self.assertEqual(pricing.total_amount, Decimal("4000"))
        self.assertEqual(pricing.platform_fee, Decimal("200"))

    def test_same_day_rental_counts_one_day(self):
        self.assertEqual(rental_days(date(2025, 3, 1), date(2025, 3, 1)), 1)
        pricing = compute_rental_pricing(date(2025, 3, 1), date(2025, 3, 1), 750)
        self.assertEqual(pricing.total_amount, Decimal("750"))

    def test_partial_days_round_up(self):
        start = datetime(2025, 1, 1, 8, 0)
        self.assertEqual(rental_days(start, start + timedelta(hours=25)), 2)
        self.assertEqual(rental_days(start, start + timedelta(hours=1)), 1)
        self.assertEqual(rental_days(start, start + timedelta(hours=48)), 2)

    def test_fee_is_exactly_five_percent(self):
        for days in range(1, 40):
            for rate in ("0.01", "10.01", "999.99", "1234.5"):
                pricing = compute_rental_pricing(date(2025, 1, 1), date(2025, 1, 1) + timedelta(days=days), rate)
                self.assertEqual(pricing.days, days)
                self.assertEqual(pricing.total_amount, days * Decimal(rate))
                self.assertEqual(pricing.platform_fee, pricing.total_amount * Decimal("0.05"))
        self.assertEqual(PLATFORM_FEE_RATE, Decimal("0.05"))

    def test_parse_rental_date_requires_iso_date(self):
        self.assertEqual(parse_rental_date("2025-01-05", "end_date"), date(2025, 1, 5))
        for raw in ("", None, "05/01/2025", "2025-13-01", "2025-01-05T10:00:00", "2025-1-5", " 2025-1-05"):
            with self.assertRaises(InvalidInputError):
                parse_rental_date(raw, "start_date")

    def test_transition_table(self):
        self.assertEqual(RENTAL_STATUS_TRANSITIONS["pending"], {"approved", "rejected"})
        self.assertEqual(RENTAL_STATUS_TRANSITIONS["approved"], {"active", "cancelled"})
        self.assertEqual(RENTAL_STATUS_TRANSITIONS["active"], {"completed"})
        for terminal in ("rejected", "completed", "cancelled"):
            self.assertEqual(RENTAL_STATUS_TRANSITIONS[terminal], set())


class CreateRentalRequestTests(MarketTestCase, unittest.TestCase):
    def _request(self, body, user_id=2):
        return self.client.post("/api/rentals", json=body, headers=auth_headers(user_id, "buyer"))

    def test_requires_identity(self):
        response = self.client.post("/api/rentals", json={})
        self.assertEqual(response.status_code, 401)
        self.assertIn("error", response.json())

    def test_rejects_invalid_token(self):
        response = self.client.post("/api/rentals", json={}, headers={"Authorization": "Bearer not-a-token"})
        self.assertEqual(response.status_code, 401)

    def test_empty_body_is_invalid(self):
        response = self._request({})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Machine ID is required"})

    def test_creates_pending_rental_with_fees(self):
        machine = self.seed_machine()
        response = self._request(
            {"machine_id": str(machine.id), "start_date": "2025-01-01", "end_date": "2025-01-05"}
        )
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["status"], "pending")
        self.assertEqual(body["renter_id"], 2)
        self.assertEqual(body["machine_id"], str(machine.id))
        self.assertEqual(body["total_amount"], 4000.0)
        self.assertEqual(body["platform_fee"], 200.0)
        self.assertEqual(body["security_deposit"], 5000.0)
        self.assertEqual(body["start_date"], "2025-01-01")
        self.assertEqual(body["end_date"], "2025-01-05")
        self.assertEqual(self.count_rows(Rental), 1)

    def test_end_before_start_is_rejected_and_nothing_persisted(self):
        machine = self.seed_machine()
        response = self._request(
            {"machine_id": str(machine.id), "start_date": "2025-01-05", "end_date": "2025-01-01"}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "End date cannot be before start date"})
        self.assertEqual(self.count_rows(Rental), 0)

    def test_sale_only_machine_cannot_be_rented(self):
        machine = self.seed_machine(listing_type="sale")
        for start, end in (("2025-01-01", "2025-01-05"), ("2025-01-05", "2025-01-01")):
            response = self._request({"machine_id": str(machine.id), "start_date": start, "end_date": end})
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json(), {"error": "This machine is not for rent"})
        self.assertEqual(self.count_rows(Rental), 0)

    def test_machine_listed_for_both_can_be_rented(self):
        machine = self.seed_machine(listing_type="both", rental_price_per_day=Decimal("250"))
        response = self._request({"machine_id": str(machine.id), "start_date": "2025-02-01", "end_date": "2025-02-01"})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["total_amount"], 250.0)

    def test_unknown_machine_is_not_found(self):
        for machine_id in (str(uuid.uuid4()), "not-a-uuid"):
            response = self._request({"machine_id": machine_id, "start_date": "2025-01-01", "end_date": "2025-01-02"})
            self.assertEqual(response.status_code, 404)
            self.assertEqual(response.json(), {"error": "Machine not found"})

    def test_soft_deleted_machine_is_not_found(self):
        machine = self.seed_machine(deleted_at=datetime(2025, 1, 1))
        response = self._request({"machine_id": str(machine.id), "start_date": "2025-01-01", "end_date": "2025-01-02"})
        self.assertEqual(response.status_code, 404)

    def test_malformed_dates_are_invalid(self):
        machine = self.seed_machine()
        response = self._request({"machine_id": str(machine.id), "start_date": "01-01-2025", "end_date": "2025-01-02"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Invalid start_date format"})
        response = self._request({"machine_id": str(machine.id), "start_date": "2025-01-01", "end_date": "tomorrow"})
        self.assertEqual(response.json(), {"error": "Invalid end_date format"})

    def test_unpadded_dates_are_invalid(self):
        machine = self.seed_machine()
        response = self._request({"machine_id": str(machine.id), "start_date": "2025-1-1", "end_date": "2025-1-5"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Invalid start_date format"})
        self.assertEqual(self.count_rows(Rental), 0)

    def test_machine_is_not_mutated(self):
        machine = self.seed_machine(status="listed")
        self._request({"machine_id": str(machine.id), "start_date": "2025-01-01", "end_date": "2025-01-03"})
        fetched = self.client.get(f"/api/machines/{machine.id}").json()
        self.assertEqual(fetched["status"], "listed")
        self.assertEqual(fetched["updated_at"], "2025-01-01T09:00:00")


class RentalQueryTests(MarketTestCase, unittest.TestCase):
    def test_my_rentals_lists_only_callers_rentals_with_machine(self):
        machine = self.seed_machine(title="Crane")
        mine = self.seed_rental(machine.id, renter_id=2)
        self.seed_rental(machine.id, renter_id=3)
        response = self.client.get("/api/rentals/my", headers=auth_headers(2))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual([item["id"] for item in body], [str(mine.id)])
        self.assertEqual(body[0]["machine"]["title"], "Crane")

    def test_owner_rentals_join_through_machine_seller(self):
        owned = self.seed_machine(seller_id=1, title="Owned")
        foreign = self.seed_machine(seller_id=9, title="Foreign")
        first = self.seed_rental(owned.id, renter_id=2, created_at=datetime(2025, 1, 1))
        second = self.seed_rental(owned.id, renter_id=3, created_at=datetime(2025, 1, 2))
        self.seed_rental(foreign.id, renter_id=2)
        response = self.client.get("/api/rentals/manage", headers=auth_headers(1))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual([item["id"] for item in body], [str(second.id), str(first.id)])
        self.assertTrue(all(item["machine"]["seller_id"] == 1 for item in body))

    def test_rental_lists_require_identity(self):
        self.assertEqual(self.client.get("/api/rentals/my").status_code, 401)
        self.assertEqual(self.client.get("/api/rentals/manage").status_code, 401)


class UpdateRentalStatusTests(MarketTestCase, unittest.TestCase):
    def setUp(self):
        super().setUp()
        self.machine = self.seed_machine(seller_id=1)
        self.rental = self.seed_rental(self.machine.id, renter_id=2)

    def _update(self, status, user_id=1, rental_id=None):
        return self.client.put(
            f"/api/rentals/{rental_id or self.rental.id}/status",
            json={"status": status},
            headers=auth_headers(user_id),
        )

    def test_owner_approves(self):
        response = self._update("approved")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "approved")
        self.assertEqual(self.reload(Rental, self.rental.id).status, "approved")

    def test_full_lifecycle(self):
        for status in ("approved", "active", "completed"):
            self.assertEqual(self._update(status).status_code, 200)
        self.assertEqual(self.reload(Rental, self.rental.id).status, "completed")

    def test_non_owner_is_forbidden_and_status_unchanged(self):
        response = self._update("approved", user_id=2)
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json(), {"error": "You are not the owner of this machine"})
        self.assertEqual(self.reload(Rental, self.rental.id).status, "pending")

    def test_unknown_rental_is_not_found(self):
        self.assertEqual(self._update("approved", rental_id=uuid.uuid4()).status_code, 404)
        self.assertEqual(self._update("approved", rental_id="garbage").status_code, 404)

    def test_illegal_transition_is_rejected(self):
        response = self._update("completed")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Invalid status transition: pending -> completed"})
        self.assertEqual(self.reload(Rental, self.rental.id).status, "pending")

    def test_terminal_state_has_no_exit(self):
        self.assertEqual(self._update("rejected").status_code, 200)
        self.assertEqual(self._update("approved").status_code, 400)

    def test_unknown_status_is_rejected(self):
        response = self._update("teleported")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.reload(Rental, self.rental.id).status, "pending")

    def test_same_status_is_a_no_op(self):
        response = self._update("pending")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "pending")

    def test_fees_are_not_recomputed(self):
        self._update("approved")
        stored = self.reload(Rental, self.rental.id)
        self.assertEqual(Decimal(str(stored.platform_fee)), Decimal("50"))
        self.assertEqual(Decimal(str(stored.total_amount)), Decimal("1000"))


if __name__ == "__main__":
    unittest.main()
