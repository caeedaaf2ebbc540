"""
Journey search and fare engine.

A search runs four stages, each consuming the previous stage's output:
- route matching: routes that visit the source stop before the destination stop
- bus fetching: active buses on those routes, optionally by bus type
- journey calculation: segment fare, duration and stop details per bus
- price filter, sort and pagination

Searches are read-only and stateless; nothing is cached between calls.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from buspass.core.config import settings
from buspass.core.logger import logger, log_error, log_search
from buspass.db import crud
from buspass.db.models import Bus, Route, Stop
from buspass.schemas.bus import BusSummary
from buspass.schemas.search import BusWithJourneyInfo, JourneyInfo, Pagination, SearchOptions
from buspass.schemas.stop import StopSnapshot

NOT_AVAILABLE = "N/A"

_TIME_OF_DAY = re.compile(r"^(\d{1,2}):(\d{1,2}) (AM|PM)$", re.IGNORECASE)


class SearchError(Exception):
    """A search failed for a reason other than caller input"""


@dataclass
class SearchResult:
    items: List[BusWithJourneyInfo]
    pagination: Pagination
    message: str


def first_stop_index(stops: Sequence[Stop], name: str) -> int:
    """Index of the first stop named `name` (case-insensitive), -1 if absent"""
    wanted = name.lower()
    for index, stop in enumerate(stops):
        if stop.name.lower() == wanted:
            return index
    return -1


def segment_fare(fare_per_segment: Optional[float], segments: int, seats: int = 1) -> float:
    """Linear fare model: price per stop-segment x segments x seats"""
    return (fare_per_segment or 0) * segments * seats


def time_to_minutes(value: Any) -> float:
    """
    Convert "HH:MM AM/PM" to minutes since midnight.
    "N/A", None and anything unparseable map to +inf so they sort last.
    """
    if not isinstance(value, str):
        return math.inf
    match = _TIME_OF_DAY.match(value.strip())
    if not match:
        return math.inf

    hours, minutes, period = int(match.group(1)), int(match.group(2)), match.group(3).upper()
    if period == "PM" and hours != 12:
        hours += 12
    elif period == "AM" and hours == 12:
        hours = 0
    return hours * 60 + minutes


_LEADING_FLOAT = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def leading_float(value: Any) -> Optional[float]:
    """
    Numeric prefix of a query value: "40abc" -> 40.0, " 12.5" -> 12.5.
    None when the value does not start with a number.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_FLOAT.match(str(value))
    return float(match.group(1)) if match else None


def leading_int(value: Any) -> Optional[int]:
    """Integer prefix of a query value: "2.5" -> 2, "3rd" -> 3; None when there is none"""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def _numeric(value: Any) -> float:
    return math.inf if value is None else value


class JourneySearchService:
    """Service for searching buses between two stops"""

    def __init__(self):
        self.default_average_stop_time = settings.DEFAULT_AVERAGE_STOP_TIME
        self.default_page_size = settings.SEARCH_PAGE_SIZE
        self.read_retries = settings.SEARCH_READ_RETRIES

        self._sort_values: dict = {
            "fare": lambda item: _numeric(item.journey_info.fare),
            "duration": lambda item: _numeric(item.journey_info.duration),
            "departure": lambda item: time_to_minutes(item.journey_info.departure_time),
        }

    # ============ Store reads ============

    def _read(self, db: Session, reader: Callable, *args):
        """Run a read-only store call, retrying transient connection failures"""
        attempt = 0
        while True:
            try:
                return reader(db, *args)
            except OperationalError as e:
                db.rollback()
                if attempt >= self.read_retries:
                    raise
                attempt += 1
                logger.warning(f"Transient read failure in {reader.__name__} (attempt {attempt}): {e}")

    # ============ Route matching ============

    @staticmethod
    def route_matches(route: Route, source: str, destination: str) -> bool:
        """
        True when the route visits source strictly before destination.
        Only the first occurrence of each stop name counts.
        """
        stops = route.stops
        source_index = first_stop_index(stops, source)
        destination_index = first_stop_index(stops, destination)
        return source_index != -1 and destination_index != -1 and source_index < destination_index

    def find_matching_routes(self, db: Session, source: str, destination: str) -> List[Route]:
        """Routes (in storage order) on which source precedes destination"""
        routes = self._read(db, crud.list_routes_with_stops)
        return [route for route in routes if self.route_matches(route, source, destination)]

    # ============ Bus fetching ============

    @staticmethod
    def parse_bus_types(bus_type: Optional[str]) -> List[str]:
        """Split a comma-separated bus type filter, dropping blank entries"""
        if not bus_type:
            return []
        return [part.strip() for part in bus_type.split(",") if part.strip()]

    def fetch_buses_for_routes(self, db: Session, route_ids: List[int], bus_type: Optional[str] = None) -> List[Bus]:
        """Active buses on the given routes, restricted by bus type when a filter is given"""
        return self._read(db, crud.find_active_buses_by_routes, route_ids, self.parse_bus_types(bus_type))

    # ============ Journey calculation ============

    def build_journey(self, bus: Bus, source: str, destination: str, date: str) -> Optional[BusWithJourneyInfo]:
        """
        Journey details for one bus, or None when the bus's route does not
        run from source to destination.
        """
        route = bus.route
        if route is None:
            return None

        stops = route.stops
        source_index = first_stop_index(stops, source)
        destination_index = first_stop_index(stops, destination)
        if source_index == -1 or destination_index == -1 or source_index >= destination_index:
            return None

        stops_in_between = destination_index - source_index
        route_start = route.operational_start_time or NOT_AVAILABLE
        route_end = route.operational_end_time or NOT_AVAILABLE

        # No per-stop timetable: only a journey from the first stop has a known departure
        departure_time = route_start if source_index == 0 else NOT_AVAILABLE

        journey = JourneyInfo(
            source_stop=StopSnapshot.model_validate(stops[source_index]),
            destination_stop=StopSnapshot.model_validate(stops[destination_index]),
            departure_time=departure_time,
            arrival_time=NOT_AVAILABLE,
            duration=stops_in_between * (route.average_stop_time or self.default_average_stop_time),
            fare=segment_fare(bus.fare, stops_in_between),
            date=date,
            route_operational_start_time=route_start,
            route_operational_end_time=route_end,
        )
        return BusWithJourneyInfo(bus=BusSummary.model_validate(bus), journey_info=journey)

    def calculate_journey_details(
        self,
        buses: List[Bus],
        source: str,
        destination: str,
        date: str
    ) -> List[BusWithJourneyInfo]:
        """Journey details for every bus that actually runs source -> destination"""
        results = []
        for bus in buses:
            item = self.build_journey(bus, source, destination, date)
            if item is None:
                logger.debug(f"Skipping bus {bus.bus_number}: route does not run '{source}' -> '{destination}'")
                continue
            results.append(item)
        return results

    # ============ Filter / sort / paginate ============

    @staticmethod
    def apply_price_filter(items: List[BusWithJourneyInfo], max_price: Any) -> List[BusWithJourneyInfo]:
        """
        Keep items whose per-seat fare is within max_price.
        Only the numeric prefix of max_price counts; without one the filter is a no-op.
        """
        ceiling = leading_float(max_price)
        if ceiling is None or not math.isfinite(ceiling):
            return items
        return [item for item in items if item.journey_info.fare <= ceiling]

    def sort_results(
        self,
        items: List[BusWithJourneyInfo],
        sort_by: Optional[str],
        sort_order: Optional[str] = "asc"
    ) -> List[BusWithJourneyInfo]:
        """
        Stable sort by fare, duration or departure time.
        Items with an unknown value trail in both directions; an unknown key
        leaves the order unchanged.
        """
        value_of = self._sort_values.get(sort_by or "")
        if value_of is None:
            return list(items)

        # Only "asc" (any case) ascends; every other order descends
        descending = (sort_order or "asc").lower() != "asc"
        keyed = [(value_of(item), item) for item in items]
        known = [pair for pair in keyed if pair[0] != math.inf]
        unknown = [item for value, item in keyed if value == math.inf]

        known.sort(key=lambda pair: pair[0], reverse=descending)
        return [item for _, item in known] + unknown

    @staticmethod
    def paginate_results(items: List[Any], page: int, limit: int) -> Tuple[List[Any], Pagination]:
        """Slice one 1-indexed page; an out-of-range page yields an empty slice"""
        total_items = len(items)
        total_pages = math.ceil(total_items / limit)
        start = (page - 1) * limit

        pagination = Pagination(
            current_page=page,
            total_pages=total_pages,
            total_items=total_items,
            limit=limit,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )
        return items[start:start + limit], pagination

    # ============ Orchestration ============

    def search_buses(
        self,
        db: Session,
        source: str,
        destination: str,
        date: str,
        options: Optional[SearchOptions] = None
    ) -> SearchResult:
        """
        Run a full search.

        Raises:
            SearchError: on any unexpected failure; no partial results are returned
        """
        options = options or SearchOptions(limit=self.default_page_size)
        page = options.page if options.page >= 1 else 1
        limit = options.limit if options.limit >= 1 else self.default_page_size

        try:
            routes = self.find_matching_routes(db, source, destination)
            if not routes:
                # Nothing to page through: always reported as page 1
                _, pagination = self.paginate_results([], 1, limit)
                log_search(source, destination, date, 0)
                return SearchResult(
                    items=[],
                    pagination=pagination,
                    message="No routes found for the given source and destination",
                )

            buses = self.fetch_buses_for_routes(db, [route.id for route in routes], options.bus_type)
            items = self.calculate_journey_details(buses, source, destination, date)
            items = self.apply_price_filter(items, options.max_price)
            items = self.sort_results(items, options.sort_by, options.sort_order)
            page_items, pagination = self.paginate_results(items, page, limit)
        except Exception as e:
            log_error("journey_search", e)
            raise SearchError(f"Error searching buses: {e}") from e

        if pagination.total_items == 0:
            message = "No buses found matching your criteria."
        elif not page_items:
            message = "No buses found on this page."
        else:
            message = "Buses found successfully"

        log_search(source, destination, date, pagination.total_items)
        return SearchResult(items=page_items, pagination=pagination, message=message)


# Singleton instance
journey_search_service = JourneySearchService()
