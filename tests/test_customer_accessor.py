"""
tests/test_customer_accessor.py -- CustomerAccessor against a real SQLite database.

Covers:
  - Employee row scope on list, count, get, update, delete (out of scope == NotFound)
  - Administrator access unrestricted by ownership
  - Customer-role principals refused before any query (Forbidden)
  - Pagination: page 2 of 25 rows, total_pages, out-of-range page_size rejected
  - Search: case-insensitive substring, AND-ed with scope, LIKE wildcards literal
  - Email uniqueness on create and update; unchanged own email allowed
"""

from __future__ import annotations

import pytest

from auth.models import Principal
from core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from records.accessor import CustomerAccessor
from records.models import Customer, PageRequest


def _customer(n: int, **overrides) -> Customer:
    fields = dict(
        first_name=f"First{n}",
        last_name=f"Last{n}",
        email=f"customer{n}@example.com",
        phone=f"0770000{n:03d}",
        business_name=f"Business {n}",
        business_type="Retail",
        tin_number=f"TIN{n}",
        vat_number=f"VAT{n}",
    )
    fields.update(overrides)
    return Customer(**fields)


@pytest.fixture
def accessor(engine) -> CustomerAccessor:
    return CustomerAccessor(engine)


@pytest.fixture
def seeded(accessor: CustomerAccessor, people: dict[str, Principal]) -> dict[str, list[Customer]]:
    """alice owns 3 customers, bob owns 2."""
    return {
        "alice": [accessor.create(people["alice"], _customer(n)) for n in range(3)],
        "bob": [accessor.create(people["bob"], _customer(n)) for n in range(10, 12)],
    }


class TestEmployeeScope:
    def test_list_only_own_rows_and_scoped_total(self, accessor, people, seeded) -> None:
        page = accessor.list(people["alice"], PageRequest())
        assert {c.created_by for c in page.items} == {people["alice"].id}
        assert page.total == 3
        assert len(page.items) == 3

    def test_count_is_scoped(self, accessor, people, seeded) -> None:
        assert accessor.count(people["alice"]) == 3
        assert accessor.count(people["bob"]) == 2

    def test_get_other_employees_row_is_not_found(self, accessor, people, seeded) -> None:
        bobs = seeded["bob"][0]
        with pytest.raises(NotFound) as out_of_scope:
            accessor.get(people["alice"], bobs.id)
        with pytest.raises(NotFound) as missing:
            accessor.get(people["alice"], 99999)
        assert out_of_scope.value.message == missing.value.message

    def test_update_other_employees_row_is_not_found(self, accessor, people, seeded) -> None:
        bobs = seeded["bob"][0]
        with pytest.raises(NotFound):
            accessor.update(people["alice"], bobs.id, _customer(50))
        assert accessor.get(people["bob"], bobs.id).email == bobs.email

    def test_delete_other_employees_row_is_not_found(self, accessor, people, seeded) -> None:
        bobs = seeded["bob"][0]
        with pytest.raises(NotFound):
            accessor.delete(people["alice"], bobs.id)
        assert accessor.get(people["bob"], bobs.id).id == bobs.id

    def test_create_sets_owner_to_caller(self, accessor, people) -> None:
        created = accessor.create(people["alice"], _customer(1, created_by=people["bob"].id))
        assert created.created_by == people["alice"].id
        assert created.created_by_name == "Alice Tester"

    def test_update_keeps_owner(self, accessor, people, seeded) -> None:
        own = seeded["alice"][0]
        updated = accessor.update(people["alice"], own.id, _customer(77, city="Kandy"))
        assert updated.created_by == people["alice"].id
        assert updated.city == "Kandy"
        assert updated.email == "customer77@example.com"

    def test_recent_is_scoped(self, accessor, people, seeded) -> None:
        assert {c.created_by for c in accessor.recent(people["bob"])} == {people["bob"].id}


class TestAdministrator:
    def test_list_sees_everything(self, accessor, people, seeded) -> None:
        page = accessor.list(people["admin"], PageRequest())
        assert page.total == 5

    def test_get_update_delete_any_row(self, accessor, people, seeded) -> None:
        bobs = seeded["bob"][1]
        assert accessor.get(people["admin"], bobs.id).id == bobs.id
        updated = accessor.update(people["admin"], bobs.id, _customer(88))
        assert updated.created_by == people["bob"].id
        accessor.delete(people["admin"], bobs.id)
        with pytest.raises(NotFound):
            accessor.get(people["admin"], bobs.id)


class TestCustomerRole:
    @pytest.mark.parametrize("operation", ["list", "count", "get", "create", "delete"])
    def test_denied_outright(self, accessor, people, seeded, operation: str) -> None:
        carol = people["carol"]
        calls = {
            "list": lambda: accessor.list(carol, PageRequest()),
            "count": lambda: accessor.count(carol),
            "get": lambda: accessor.get(carol, seeded["alice"][0].id),
            "create": lambda: accessor.create(carol, _customer(90)),
            "delete": lambda: accessor.delete(carol, seeded["alice"][0].id),
        }
        with pytest.raises(Forbidden):
            calls[operation]()


class TestPagination:
    def test_second_page_of_25(self, accessor, people) -> None:
        created = [accessor.create(people["alice"], _customer(n)) for n in range(25)]
        page = accessor.list(people["alice"], PageRequest(page=2, page_size=10))

        assert page.total == 25
        assert page.total_pages == 3
        # newest first: page 2 holds the 11th..20th newest rows
        newest_first = list(reversed(created))
        assert [c.id for c in page.items] == [c.id for c in newest_first[10:20]]

    def test_last_partial_page(self, accessor, people) -> None:
        for n in range(25):
            accessor.create(people["alice"], _customer(n))
        page = accessor.list(people["alice"], PageRequest(page=3, page_size=10))
        assert len(page.items) == 5

    @pytest.mark.parametrize(("page", "page_size"), [(1, 0), (1, 101), (0, 10), (-1, 10), (10**18, 100)])
    def test_out_of_range_rejected(self, accessor, people, page: int, page_size: int) -> None:
        with pytest.raises(ValidationFailed):
            accessor.list(people["alice"], PageRequest(page=page, page_size=page_size))

    def test_bounds_accepted(self, accessor, people) -> None:
        assert accessor.list(people["alice"], PageRequest(page_size=1)).page_size == 1
        assert accessor.list(people["alice"], PageRequest(page_size=100)).page_size == 100


class TestSearch:
    def test_case_insensitive_substring(self, accessor, people) -> None:
        accessor.create(people["alice"], _customer(1, business_name="Acme Traders"))
        accessor.create(people["alice"], _customer(2, business_name="Globex"))
        page = accessor.list(people["alice"], PageRequest(search="aCmE"))
        assert [c.business_name for c in page.items] == ["Acme Traders"]
        assert page.total == 1

    def test_search_is_and_combined_with_scope(self, accessor, people) -> None:
        accessor.create(people["alice"], _customer(1, business_name="Acme North"))
        accessor.create(people["bob"], _customer(2, business_name="Acme South"))
        page = accessor.list(people["alice"], PageRequest(search="acme"))
        assert page.total == 1
        assert page.items[0].business_name == "Acme North"

    def test_like_wildcards_are_literal(self, accessor, people) -> None:
        accessor.create(people["alice"], _customer(1, business_name="100% Cotton"))
        accessor.create(people["alice"], _customer(2, business_name="1000 Threads"))
        page = accessor.list(people["alice"], PageRequest(search="100%"))
        assert [c.business_name for c in page.items] == ["100% Cotton"]

    def test_blank_search_matches_all(self, accessor, people, seeded) -> None:
        assert accessor.list(people["alice"], PageRequest(search="   ")).total == 3


class TestEmailUniqueness:
    def test_create_duplicate_email_conflict(self, accessor, people, seeded) -> None:
        taken = seeded["bob"][0].email
        with pytest.raises(Conflict):
            accessor.create(people["alice"], _customer(60, email=taken))
        assert accessor.count(people["alice"]) == 3

    def test_update_to_other_records_email_conflict(self, accessor, people, seeded) -> None:
        first, second = seeded["alice"][0], seeded["alice"][1]
        with pytest.raises(Conflict):
            accessor.update(people["alice"], first.id, _customer(61, email=second.email))

    def test_update_with_own_unchanged_email_succeeds(self, accessor, people, seeded) -> None:
        own = seeded["alice"][0]
        updated = accessor.update(people["alice"], own.id, _customer(62, email=own.email))
        assert updated.email == own.email
        assert updated.first_name == "First62"
