from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator

from .errors import InvalidTravelModeError


class Tag:
    """OSM tag keys consulted while building the graph."""

    ROAD_TYPE = "highway"
    RAIL_TYPE = "railway"
    JUNCTION_TYPE = "junction"
    ONE_WAY = "oneway"
    ACCESS = "access"
    VEHICLE = "vehicle"
    MOTOR_VEHICLE = "motor_vehicle"
    MOTOR_CAR = "motorcar"
    SERVICE_VEHICLE = "psv"
    BUS = "bus"
    BICYCLE = "bicycle"
    HORSE = "horse"
    FOOT = "foot"
    EXCEPTION = "except"
    TYPE = "type"
    RESTRICTION = "restriction"


class WayType:
    FREEWAY = "motorway"
    TRUNK = "trunk"
    PRIMARY = "primary"
    SECONDARY = "secondary"
    TERTIARY = "tertiary"
    MINOR = "unclassified"
    RESIDENTIAL = "residential"
    TWO_TRACK = "track"
    SERVICE_ROAD = "service"
    BICYCLE_PATH = "cycleway"
    HORSE_PATH = "bridleway"
    FOOT_PATH = "footway"
    STAIRS = "steps"
    PATH = "path"
    TRAM = "tram"
    LIGHT_RAIL = "light_rail"
    RAIL = "rail"
    SUBWAY = "subway"
    NARROW_GAUGE = "narrow_gauge"


class TravelMode(str, Enum):
    CAR = "car"
    BUS = "bus"
    BICYCLE = "bicycle"
    HORSE = "horse"
    TRAM = "tram"
    TRAIN = "train"
    # Value matches the OSM suffix used by oneway:foot and restriction:foot.
    WALK = "foot"


class RouteConfig(BaseModel):
    """Permitted access types and road or rail type weighting that together
    define routing preferences for one travel mode."""

    name: str
    # Larger numbers indicate stronger preference; zero or missing means unusable.
    weights: dict[str, float] = Field(default_factory=dict)
    # Ordered general to specific so later tags override earlier ones.
    can_use: list[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        name = str(value).strip().lower()
        if not name:
            raise ValueError("route config name must not be empty")
        return name


PREFERENCES: dict[str, RouteConfig] = {
    TravelMode.CAR.value: RouteConfig(
        name=TravelMode.CAR.value,
        weights={
            WayType.FREEWAY: 10,
            WayType.TRUNK: 10,
            WayType.PRIMARY: 2,
            WayType.SECONDARY: 1.5,
            WayType.TERTIARY: 1,
            WayType.MINOR: 1,
            WayType.RESIDENTIAL: 0.7,
            WayType.TWO_TRACK: 0.5,
            WayType.SERVICE_ROAD: 0.5,
        },
        can_use=[Tag.ACCESS, Tag.VEHICLE, Tag.MOTOR_VEHICLE, Tag.MOTOR_CAR],
    ),
    TravelMode.BUS.value: RouteConfig(
        name=TravelMode.BUS.value,
        weights={
            WayType.FREEWAY: 10,
            WayType.TRUNK: 10,
            WayType.PRIMARY: 2,
            WayType.SECONDARY: 1.5,
            WayType.TERTIARY: 1,
            WayType.MINOR: 1,
            WayType.RESIDENTIAL: 0.8,
            WayType.TWO_TRACK: 0.3,
            WayType.SERVICE_ROAD: 0.9,
        },
        can_use=[Tag.ACCESS, Tag.VEHICLE, Tag.MOTOR_VEHICLE, Tag.SERVICE_VEHICLE, Tag.BUS],
    ),
    TravelMode.BICYCLE.value: RouteConfig(
        name=TravelMode.BICYCLE.value,
        weights={
            WayType.TRUNK: 0.05,
            WayType.PRIMARY: 0.3,
            WayType.SECONDARY: 0.9,
            WayType.TERTIARY: 1,
            WayType.MINOR: 1,
            WayType.BICYCLE_PATH: 2,
            WayType.RESIDENTIAL: 2.5,
            WayType.TWO_TRACK: 1,
            WayType.SERVICE_ROAD: 1,
            WayType.HORSE_PATH: 0.8,
            WayType.FOOT_PATH: 0.8,
            WayType.STAIRS: 0.5,
            WayType.PATH: 1,
        },
        can_use=[Tag.ACCESS, Tag.VEHICLE, Tag.BICYCLE],
    ),
    TravelMode.HORSE.value: RouteConfig(
        name=TravelMode.HORSE.value,
        weights={
            WayType.PRIMARY: 0.05,
            WayType.SECONDARY: 0.15,
            WayType.TERTIARY: 0.3,
            WayType.MINOR: 1,
            WayType.RESIDENTIAL: 1,
            WayType.TWO_TRACK: 1,
            WayType.SERVICE_ROAD: 1,
            WayType.HORSE_PATH: 1,
            WayType.FOOT_PATH: 1.2,
            WayType.STAIRS: 1.15,
            WayType.PATH: 1.2,
        },
        can_use=[Tag.ACCESS, Tag.HORSE],
    ),
    TravelMode.TRAM.value: RouteConfig(
        name=TravelMode.TRAM.value,
        weights={
            WayType.TRAM: 1,
            WayType.LIGHT_RAIL: 1,
        },
        can_use=[Tag.ACCESS],
    ),
    TravelMode.TRAIN.value: RouteConfig(
        name=TravelMode.TRAIN.value,
        weights={
            WayType.RAIL: 1,
            WayType.LIGHT_RAIL: 1,
            WayType.SUBWAY: 1,
            WayType.NARROW_GAUGE: 1,
        },
        can_use=[Tag.ACCESS],
    ),
    TravelMode.WALK.value: RouteConfig(
        name=TravelMode.WALK.value,
        weights={
            WayType.FOOT_PATH: 1.5,
            WayType.PATH: 1.2,
            WayType.STAIRS: 1,
            WayType.RESIDENTIAL: 1,
            WayType.SERVICE_ROAD: 1,
            WayType.TWO_TRACK: 1,
            WayType.MINOR: 1,
            WayType.HORSE_PATH: 1,
            WayType.TERTIARY: 0.8,
            WayType.BICYCLE_PATH: 0.8,
            WayType.SECONDARY: 0.6,
            WayType.PRIMARY: 0.5,
        },
        can_use=[Tag.ACCESS, Tag.FOOT],
    ),
}


def get_route_config(travel_mode: str | TravelMode) -> RouteConfig:
    """Copy of the built-in preferences for a travel mode."""
    key = travel_mode.value if isinstance(travel_mode, TravelMode) else str(travel_mode).strip().lower()
    config = PREFERENCES.get(key)
    if config is None:
        raise InvalidTravelModeError(
            f"Unknown travel mode '{travel_mode}'",
            details={"known_modes": sorted(PREFERENCES)},
        )
    return config.model_copy(deep=True)
