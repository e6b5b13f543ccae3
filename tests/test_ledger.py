import os
import tempfile
import unittest
from datetime import datetime, timedelta
from decimal import Decimal

from app.db.repository import connect
from app.errors import CategoryIntegrityError
from app.services.periods import month_bounds
from tests.helpers import make_services, onboarded_user


class TestTransactionLedger(unittest.TestCase):
    def setUp(self):
        self.services, self.clock, _ = make_services()
        self.ledger = self.services.ledger
        self.repos = self.services.repos
        self.user = onboarded_user(self.services)

    def _record(self, amount: int, category: str = "comida", description: str = "", is_income=False):
        resolved = self.ledger.resolve_category(category, is_income)
        return self.ledger.record(self.user, Decimal(amount), resolved, description, is_income)

    # ── Categories ───────────────────────────────────────────────────

    def test_unknown_category_falls_back_to_direction_default(self):
        self.assertEqual(self.ledger.resolve_category("mascotas", is_income=False).name, "otros")
        self.assertEqual(self.ledger.resolve_category(None, is_income=True).name, "otros ingresos")
        self.assertEqual(self.ledger.resolve_category("Sueldo", is_income=True).name, "sueldo")

    def test_missing_default_category_is_an_integrity_error(self):
        otros = self.repos.categories.find("otros", "expense")
        self.repos.categories.update(otros.id, is_active=False)
        with self.assertRaises(CategoryIntegrityError):
            self.ledger.resolve_category("mascotas", is_income=False)

    def test_non_positive_amount_is_rejected(self):
        comida = self.ledger.resolve_category("comida", False)
        with self.assertRaises(ValueError):
            self.ledger.record(self.user, Decimal(0), comida)

    def test_batch_skips_malformed_entries(self):
        result = self.ledger.record_batch(
            self.user,
            [
                {"amount": 5000, "category": "comida", "description": "almuerzo"},
                {"amount": 0, "category": "comida"},
                {"amount": -300},
                {"amount": "abc"},
                {"category": "comida"},
                {"amount": 2000, "category": "transporte", "description": "metro"},
            ],
        )
        self.assertEqual(len(result.created), 2)
        self.assertEqual(result.skipped, 4)
        self.assertEqual(len(self.repos.transactions.for_user(self.user.id)), 2)

    def test_batch_validates_each_entry_before_committing(self):
        result = self.ledger.record_batch(
            self.user,
            [
                {"amount": 3000, "category": "comida", "description": "pan", "is_income": "false"},
                {"amount": 4000, "category": 123, "description": "numero"},
                {"amount": 1500, "is_income": "quizas"},
                "cafe 2000",
                {"amount": "2500", "category": "transporte", "description": "bus"},
            ],
        )
        self.assertEqual(result.skipped, 3)
        self.assertEqual([tx.description for tx in result.created], ["pan", "bus"])

        pan, bus = result.created
        self.assertFalse(pan.is_income)
        self.assertEqual(pan.category_id, self.repos.categories.find("comida", "expense").id)
        self.assertEqual(bus.amount, Decimal(2500))
        self.assertEqual(len(self.repos.transactions.for_user(self.user.id)), 2)

    # ── Recency ──────────────────────────────────────────────────────

    def test_recent_window_is_five_minutes(self):
        tx = self._record(5000)
        self.clock.advance(minutes=4)
        self.assertEqual(self.ledger.recent(self.user).id, tx.id)

        self.clock.advance(minutes=2)
        self.assertIsNone(self.ledger.recent(self.user))
        self.assertIsNone(self.ledger.delete_recent(self.user))
        self.assertEqual(self.repos.transactions.get(tx.id).amount, Decimal(5000))

    def test_recent_only_sees_own_transactions(self):
        other = onboarded_user(self.services, phone="+56922222222")
        resolved = self.ledger.resolve_category("comida", False)
        self.ledger.record(other, Decimal(1000), resolved)
        self.assertIsNone(self.ledger.recent(self.user))

    def test_edit_and_delete_recent(self):
        tx = self._record(5000, description="almuerzo")
        edited = self.ledger.edit(self.ledger.recent(self.user), amount=Decimal(4500))
        self.assertEqual(edited.amount, Decimal(4500))
        self.assertEqual(edited.description, "almuerzo")

        deleted = self.ledger.delete_recent(self.user)
        self.assertEqual(deleted.id, tx.id)
        self.assertIsNone(self.repos.transactions.get(tx.id))

    # ── Positional references ────────────────────────────────────────

    def test_display_order_groups_by_category_newest_first(self):
        first = self._record(1000, "comida")
        metro = self._record(2000, "transporte")
        second = self._record(3000, "comida")
        listing = self.ledger.display_order(self.user, *self._this_month())
        self.assertEqual([tx.id for tx in listing], [second.id, first.id, metro.id])

    def test_position_resolves_against_shown_list(self):
        a = self._record(1000, "comida")
        b = self._record(2000, "transporte")
        self.ledger.remember_shown(self.user, [b, a])

        self.assertEqual(self.ledger.resolve_position(self.user, 1).id, b.id)
        self.assertEqual(self.ledger.resolve_position(self.user, 2).id, a.id)
        self.assertIsNone(self.ledger.resolve_position(self.user, 3))
        self.assertIsNone(self.ledger.resolve_position(self.user, 0))

    def test_short_shown_list_never_falls_back(self):
        a = self._record(1000)
        self._record(2000)
        self.ledger.remember_shown(self.user, [a])
        self.assertIsNone(self.ledger.resolve_position(self.user, 2))

        self.ledger.remember_shown(self.user, [])
        self.assertIsNone(self.ledger.resolve_position(self.user, 1))

    def test_without_shown_list_uses_this_months_display_order(self):
        self.assertIsNone(self.user.last_shown_transaction_ids)
        first = self._record(1000, "comida")
        metro = self._record(2000, "transporte")
        self.assertEqual(self.ledger.resolve_position(self.user, 1).id, first.id)
        self.assertEqual(self.ledger.resolve_position(self.user, 2).id, metro.id)
        self.assertIsNone(self.ledger.resolve_position(self.user, 3))

    def test_position_never_resolves_foreign_or_deleted_rows(self):
        other = onboarded_user(self.services, phone="+56922222222")
        foreign = self.ledger.record(other, Decimal(1000), self.ledger.resolve_category("comida", False))
        mine = self._record(2000)
        self.ledger.remember_shown(self.user, [foreign, mine])

        self.assertIsNone(self.ledger.resolve_position(self.user, 1))
        self.ledger.delete(mine)
        self.assertIsNone(self.ledger.resolve_position(self.user, 2))

    # ── Reclassify ───────────────────────────────────────────────────

    def test_reclassify_recent_expense(self):
        tx = self._record(5000, "comida")
        result = self.ledger.reclassify_recent(self.user, "Transporte")
        self.assertEqual(result.status, "updated")
        transporte = self.repos.categories.find("transporte", "expense")
        self.assertEqual(self.repos.transactions.get(tx.id).category_id, transporte.id)

        self.assertEqual(self.ledger.reclassify_recent(self.user, "transporte").status, "unchanged")
        self.assertEqual(self.ledger.reclassify_recent(self.user, "mascotas").status, "unknown_category")

    def test_reclassify_refuses_income_and_stale_rows(self):
        self._record(500_000, "sueldo", is_income=True)
        self.assertEqual(self.ledger.reclassify_recent(self.user, "comida").status, "income")

        self.clock.advance(minutes=6)
        self.assertEqual(self.ledger.reclassify_recent(self.user, "comida").status, "not_found")

    def _this_month(self):
        return month_bounds(self.clock().date())

class TestShownListingAcrossRestarts(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmp.name, "ordenate.json")
        self.now = datetime(2026, 3, 18, 12, 0)

    def tearDown(self):
        self.tmp.cleanup()

    def _open(self):
        services, clock, _ = make_services(now=self.now, db=connect(self.path))
        return services, clock

    def test_reused_id_after_restart_never_resolves_from_old_listing(self):
        services, clock = self._open()
        user = onboarded_user(services)
        comida = services.ledger.resolve_category("comida", False)
        services.ledger.record(user, Decimal(2000), comida, "cafe")
        pan = services.ledger.record(user, Decimal(1500), comida, "pan")
        listing = services.ledger.display_order(user, *month_bounds(clock().date()))
        services.ledger.remember_shown(user, listing)
        self.assertEqual(services.ledger.resolve_position(user, 1).id, pan.id)

        services.ledger.delete(pan)
        services.repos.close()

        self.now += timedelta(minutes=10)
        services, clock = self._open()
        user = services.repos.users.get(user.id)
        comida = services.ledger.resolve_category("comida", False)
        rent = services.ledger.record(user, Decimal(450_000), comida, "arriendo nuevo")
        self.assertEqual(rent.id, pan.id)

        self.assertIsNone(services.ledger.resolve_position(user, 1))
        self.assertEqual(services.repos.transactions.get(rent.id).description, "arriendo nuevo")
        services.repos.close()
