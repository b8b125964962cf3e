import pytest

from amod_dispatch.domain.entities.geography import Point
from amod_dispatch.domain.entities.station import Station
from amod_dispatch.domain.stations import StationIndex


@pytest.fixture
def grid() -> StationIndex:
    return StationIndex(
        [
            Station(7, Point(10.0, 0.0)),
            Station(3, Point(0.0, 0.0)),
            Station(5, Point(0.0, 10.0)),
            Station(9, Point(10.0, 10.0)),
        ]
    )


def test_nearest_station_by_euclidean_distance(grid):
    assert grid.nearest_station(Point(1.0, 1.0)) == 3
    assert grid.nearest_station(Point(9.0, 2.0)) == 7
    assert grid.nearest_station(Point(2.0, 11.0)) == 5
    assert grid.nearest_station(Point(100.0, 100.0)) == 9


def test_ties_go_to_lowest_station_id(grid):
    # equidistant from all four corners
    assert grid.nearest_station(Point(5.0, 5.0)) == 3
    # equidistant from 7 and 9
    assert grid.nearest_station(Point(12.0, 5.0)) == 7
    # equidistant from 5 and 9
    assert grid.nearest_station(Point(5.0, 12.0)) == 5


def test_ids_are_sorted_and_locations_kept(grid):
    assert grid.station_ids == (3, 5, 7, 9)
    assert grid.location(9) == Point(10.0, 10.0)
    assert 5 in grid and 4 not in grid
    assert len(grid) == 4


def test_empty_index_has_no_nearest_station():
    assert StationIndex([]).nearest_station(Point(0.0, 0.0)) is None


def test_duplicate_station_ids_rejected():
    with pytest.raises(ValueError):
        StationIndex([Station(1, Point(0, 0)), Station(1, Point(5, 5))])
