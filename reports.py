"""
Read-only summaries over a list of booking rows: the dashboard cards, the
monthly analytics page, and the date/range report.
"""

import calendar
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional

from bookings import filter_bookings, is_public_request
from models import BookingStatus

_FINISHED = {BookingStatus.DONE.value, BookingStatus.COMPLETED.value}
_CANCELLED = BookingStatus.CANCELLED.value


def _is_open(b: Mapping[str, Any]) -> bool:
    return b.get("status") not in _FINISHED and b.get("status") != _CANCELLED


def active_schedule(bookings: Iterable[Mapping[str, Any]], day: str) -> List[Dict[str, Any]]:
    """Non-cancelled bookings of one day, by start time."""
    rows = [dict(b) for b in bookings if b.get("date") == day and b.get("status") != _CANCELLED]
    return sorted(rows, key=lambda b: b.get("start_time") or "")


def dashboard_stats(
    bookings: Iterable[Mapping[str, Any]],
    users: Iterable[Mapping[str, Any]],
    today: date,
) -> Dict[str, Any]:
    bookings = [b for b in bookings if not is_public_request(b)]
    users = list(users)
    today_str = today.isoformat()

    today_trainings = sorted(
        (dict(b) for b in bookings if b.get("date") == today_str and _is_open(b)),
        key=lambda b: b.get("start_time") or "",
    )
    upcoming = sorted(
        (dict(b) for b in bookings if (b.get("date") or "") > today_str and _is_open(b)),
        key=lambda b: (b.get("date") or "", b.get("start_time") or ""),
    )
    completed_today = [b for b in bookings if b.get("date") == today_str and b.get("status") in _FINISHED]

    occupancy = []
    for user in users:
        assigned = [
            b for b in today_trainings if b.get("assigned_person") == user.get("name")
        ]
        occupancy.append({
            "name": user.get("name"),
            "role": user.get("role"),
            "sessions_today": len(assigned),
            "is_busy": bool(assigned),
        })

    return {
        "total_trainings": len(bookings),
        "total_upcoming": len(today_trainings) + len(upcoming),
        "completed_today": len(completed_today),
        "team_size": len(users),
        "today": today_trainings,
        "upcoming": upcoming,
        "occupancy": occupancy,
    }


def monthly_analytics(
    bookings: Iterable[Mapping[str, Any]],
    users: Iterable[Mapping[str, Any]],
    year: int,
    month: int,
) -> Dict[str, Any]:
    prefix = f"{year:04d}-{month:02d}-"
    monthly = [b for b in bookings if (b.get("date") or "").startswith(prefix)]
    done = [b for b in monthly if b.get("status") in _FINISHED]

    performance = sorted(
        (
            {"name": u.get("name"), "count": sum(1 for b in done if b.get("assigned_person") == u.get("name"))}
            for u in users
        ),
        key=lambda row: row["count"],
        reverse=True,
    )

    # 7-day buckets starting on the 1st; the last one is cut at month end
    days_in_month = calendar.monthrange(year, month)[1]
    weeks = []
    for start in range(1, days_in_month + 1, 7):
        end = min(start + 6, days_in_month)
        count = sum(1 for b in done if start <= int(b["date"][8:10]) <= end)
        weeks.append({"name": f"Week {len(weeks) + 1}", "count": count, "range": f"{start} - {end}"})

    status = [
        {"name": "Completed", "value": len(done)},
        {"name": "To Do", "value": sum(1 for b in monthly if b.get("status") == BookingStatus.TODO.value)},
        {"name": "Cancelled", "value": sum(1 for b in monthly if b.get("status") == _CANCELLED)},
    ]

    top = performance[0] if performance and performance[0]["count"] > 0 else None
    return {
        "year": year,
        "month": month,
        "total": len(monthly),
        "status": [s for s in status if s["value"] > 0],
        "performance": performance,
        "weeks": weeks,
        "top_performer": top,
    }


def training_report(
    bookings: Iterable[Mapping[str, Any]],
    search: str = "",
    day: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> Dict[str, Any]:
    rows = filter_bookings(bookings, search=search, date=day, start_date=start_date, end_date=end_date)
    return {"generated_at": date.today().isoformat(), "total": len(rows), "items": rows}
