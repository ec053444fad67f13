"""
Dashboard figures computed from order lists.
"""
from calendar import month_name
from datetime import date, datetime, timezone
from typing import List, Optional

from schemas import AdminStats, MonthlyRevenue, Order, OrderItemStatus, VendorStats
from status import derive_aggregate_status


def vendor_stats(orders: List[Order], today: Optional[date] = None) -> VendorStats:
    """Figures for one vendor, from that vendor's order projections."""
    today = today or datetime.now(timezone.utc).date()
    revenue_today = sum(
        sum(item.subtotal for item in o.items)
        for o in orders
        if o.created_at.astimezone(timezone.utc).date() == today
    )
    active = [o for o in orders if o.status != OrderItemStatus.COMPLETED]
    rated = [o for o in orders if o.rating]
    average = sum(o.rating for o in rated) / len(rated) if rated else 0.0
    return VendorStats(
        revenue_today=revenue_today,
        active_orders=len(active),
        rating_count=len(rated),
        average_rating=average,
    )


def admin_stats(orders: List[Order], recent: int = 5) -> AdminStats:
    monthly = {month: 0.0 for month in month_name[1:]}
    for o in orders:
        monthly[month_name[o.created_at.month]] += o.total_amount
    newest = sorted(orders, key=lambda o: o.created_at, reverse=True)[:recent]
    return AdminStats(
        total_revenue=sum(o.total_amount for o in orders),
        order_count=len(orders),
        recent_orders=[o.model_copy(update={"status": derive_aggregate_status(o.items)}) for o in newest],
        monthly_revenue=[MonthlyRevenue(month=m, revenue=r) for m, r in monthly.items()],
    )
