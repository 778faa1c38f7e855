"""Overall inventory: per-item totals across every department's stock."""

from collections.abc import Collection, Iterable, Mapping

from clinic_inventory.schemas.stock import AggregateLine, AggregateView, DepartmentQuantity
from clinic_inventory.services.status import StatusThresholds, classify


def aggregate(
    stocks: Iterable,
    central_departments: Collection[str] = (),
    baselines: Mapping[str, int | None] | None = None,
    names: Mapping[str, str] | None = None,
    thresholds: StatusThresholds | None = None,
) -> AggregateView:
    """Sum location stock rows per catalog item.

    ``stocks`` is any iterable of objects with ``item_id``, ``department`` and
    ``quantity``. Rows are merged by ``item_id``; a department without a row
    simply contributes nothing. Quantities in ``central_departments`` count as
    central stock, everything else as transferred stock.

    The status of each line is computed from its grand total against the
    catalog baseline in ``baselines``. An item without a baseline is reported
    as Unknown.
    """
    baselines = baselines or {}
    names = names or {}

    per_item: dict[str, dict[str, int]] = {}
    for row in stocks:
        depts = per_item.setdefault(row.item_id, {})
        depts[row.department] = depts.get(row.department, 0) + (row.quantity or 0)

    lines = []
    for item_id in sorted(per_item):
        depts = per_item[item_id]
        central = sum(q for d, q in depts.items() if d in central_departments)
        transferred = sum(q for d, q in depts.items() if d not in central_departments)
        grand_total = central + transferred
        baseline = baselines.get(item_id)
        lines.append(
            AggregateLine(
                item_id=item_id,
                item_name=names.get(item_id, ""),
                central_quantity=central,
                transferred_quantity=transferred,
                grand_total=grand_total,
                max_quantity=baseline,
                status=classify(grand_total, baseline, thresholds),
                departments=[
                    DepartmentQuantity(department=d, quantity=depts[d], central=d in central_departments)
                    for d in sorted(depts)
                ],
            )
        )

    return AggregateView(
        items=lines,
        item_count=len(lines),
        central_total=sum(line.central_quantity for line in lines),
        transferred_total=sum(line.transferred_quantity for line in lines),
        grand_total=sum(line.grand_total for line in lines),
    )
