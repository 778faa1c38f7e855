from types import SimpleNamespace

from hypothesis import given
from hypothesis import strategies as st

from clinic_inventory.schemas.actor import Actor
from clinic_inventory.services.access import visible_stocks
from clinic_inventory.services.aggregation import aggregate
from clinic_inventory.services.status import StockStatus

CENTRAL = {"CSR", "Pharmacy"}


def row(item_id, department, quantity):
    return SimpleNamespace(item_id=item_id, department=department, quantity=quantity)


class TestAggregate:
    def test_empty_input(self):
        view = aggregate([], CENTRAL)
        assert view.items == []
        assert view.item_count == 0
        assert view.grand_total == 0

    def test_central_and_transferred_totals(self):
        view = aggregate(
            [row("gauze", "CSR", 60), row("gauze", "ICU", 15), row("gauze", "ER", 5), row("gauze", "Pharmacy", 10)],
            CENTRAL,
            baselines={"gauze": 100},
            names={"gauze": "Gauze Pad"},
        )
        [line] = view.items
        assert line.item_name == "Gauze Pad"
        assert line.central_quantity == 70
        assert line.transferred_quantity == 20
        assert line.grand_total == 90
        assert line.status == StockStatus.GOOD
        assert [d.department for d in line.departments] == ["CSR", "ER", "ICU", "Pharmacy"]
        assert view.central_total == 70
        assert view.transferred_total == 20

    def test_item_missing_from_some_departments(self):
        view = aggregate([row("a", "CSR", 10), row("b", "ICU", 4)], CENTRAL, baselines={"a": 10, "b": 10})
        by_id = {line.item_id: line for line in view.items}
        assert by_id["a"].transferred_quantity == 0
        assert by_id["b"].central_quantity == 0
        assert by_id["b"].grand_total == 4

    def test_missing_baseline_is_unknown_not_good(self):
        view = aggregate([row("gauze", "CSR", 500)], CENTRAL)
        assert view.items[0].status == StockStatus.UNKNOWN
        assert view.items[0].max_quantity is None

    def test_status_uses_grand_total_against_catalog_baseline(self):
        view = aggregate([row("gauze", "CSR", 30), row("gauze", "ICU", 10)], CENTRAL, baselines={"gauze": 100})
        assert view.items[0].status == StockStatus.VERY_LOW

    def test_merges_by_catalog_key_not_name(self):
        view = aggregate(
            [row("k1", "CSR", 5), row("k2", "CSR", 7)],
            CENTRAL,
            names={"k1": "Gauze", "k2": "Gauze"},
        )
        assert [line.item_id for line in view.items] == ["k1", "k2"]

    def test_none_quantity_counts_as_zero(self):
        view = aggregate([row("a", "CSR", None), row("a", "ICU", 3)], CENTRAL)
        assert view.items[0].grand_total == 3

    def test_repeated_call_is_identical(self):
        rows = [row("a", "CSR", 10), row("a", "ICU", 3), row("b", "ER", 1)]
        first = aggregate(rows, CENTRAL, baselines={"a": 20})
        second = aggregate(rows, CENTRAL, baselines={"a": 20})
        assert first == second
        assert first.model_dump_json() == second.model_dump_json()


_rows = st.lists(
    st.builds(
        row,
        st.sampled_from(["a", "b", "c"]),
        st.sampled_from(["CSR", "Pharmacy", "ICU", "ER"]),
        st.integers(min_value=0, max_value=1000),
    ),
    max_size=30,
)


class TestAggregateProperties:
    @given(rows=_rows, data=st.data())
    def test_order_independent(self, rows, data):
        shuffled = data.draw(st.permutations(rows))
        baselines = {"a": 100, "b": 50}
        assert aggregate(rows, CENTRAL, baselines) == aggregate(shuffled, CENTRAL, baselines)

    @given(rows=_rows)
    def test_grand_total_is_sum_of_rows(self, rows):
        view = aggregate(rows, CENTRAL)
        assert view.grand_total == sum(r.quantity for r in rows)
        assert view.grand_total == view.central_total + view.transferred_total


class TestVisibleStocks:
    rows = [row("a", "CSR", 1), row("a", "ICU", 2), row("a", "ER", 3)]
    clinics = {"CSR": "Main", "ICU": "Main", "ER": "North"}

    def test_overall_visibility_sees_everything(self):
        actor = Actor(id="admin", overall_visibility=True)
        assert len(visible_stocks(self.rows, actor, self.clinics)) == 3

    def test_clinic_affiliation(self):
        actor = Actor(id="u1", clinic="Main")
        assert {r.department for r in visible_stocks(self.rows, actor, self.clinics)} == {"CSR", "ICU"}

    def test_own_department_only(self):
        actor = Actor(id="u2", department="ER")
        assert [r.department for r in visible_stocks(self.rows, actor, self.clinics)] == ["ER"]

    def test_no_affiliation_sees_nothing(self):
        assert visible_stocks(self.rows, Actor(id="u3"), self.clinics) == []
