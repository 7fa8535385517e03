"""
Simulation state and weather providers.

The solar model does not own the simulation state. It registers
named slots in a SimulationStateHeader when it is built and writes
into the numpy-backed SimulationState on every march.
"""

from dataclasses import dataclass
import datetime
import logging
from typing import Dict, Iterable, List, NamedTuple, Optional

import numpy as np

from dcsolar.errors import MarchFailure
from dcsolar.sky import WeaData

logger: logging.Logger = logging.getLogger("dcsolar.state")


SOLAR_FIELDS = ("front_solar", "back_solar")
IR_FIELDS = ("front_ir", "back_ir")


class StateElement(NamedTuple):
    """Key of a state slot, e.g. ("surface", 3, "front_solar")."""

    kind: str
    index: int
    field: str


class SimulationStateHeader:
    """Ordered registry of state slots."""

    def __init__(self):
        self._elements: List[StateElement] = []
        self._initial: List[float] = []
        self._lookup: Dict[StateElement, int] = {}

    def __len__(self) -> int:
        return len(self._elements)

    def __contains__(self, element) -> bool:
        return StateElement(*element) in self._lookup

    @property
    def elements(self) -> tuple[StateElement, ...]:
        return tuple(self._elements)

    def register(self, element, initial: float = 0.0) -> int:
        """Register a slot and return its index.

        Registering an existing slot returns the existing index.
        """
        element = StateElement(*element)
        if element in self._lookup:
            return self._lookup[element]
        self._lookup[element] = len(self._elements)
        self._elements.append(element)
        self._initial.append(initial)
        return self._lookup[element]

    def index_of(self, element) -> int:
        try:
            return self._lookup[StateElement(*element)]
        except KeyError:
            raise KeyError(f"State slot not registered: {element}") from None

    def copy(self) -> "SimulationStateHeader":
        other = SimulationStateHeader()
        for element, initial in zip(self._elements, self._initial):
            other.register(element, initial)
        return other

    def update(self, other: "SimulationStateHeader") -> None:
        """Register every slot of another header, keeping the order."""
        for element, initial in zip(other._elements, other._initial):
            self.register(element, initial)

    def take_values(self) -> "SimulationState":
        return SimulationState(self, np.array(self._initial, dtype=float))


class SimulationState:
    """Values of the slots of a header."""

    def __init__(self, header: SimulationStateHeader, values: np.ndarray):
        if len(values) != len(header):
            raise ValueError(
                f"State has {len(values)} values for {len(header)} registered slots"
            )
        self.header = header
        self.values = values

    def __getitem__(self, element) -> float:
        return float(self.values[self.header.index_of(element)])

    def __setitem__(self, element, value: float) -> None:
        self.values[self.header.index_of(element)] = value

    def copy(self) -> "SimulationState":
        return SimulationState(self.header, self.values.copy())


class WeatherSeries:
    """Weather rows indexed by their timestamp."""

    def __init__(self, data: Iterable[WeaData]):
        self._data: Dict[datetime.datetime, WeaData] = {}
        for row in data:
            self._data[row.time] = row
        logger.debug("Weather series with %d rows", len(self._data))

    def __len__(self) -> int:
        return len(self._data)

    def get_weather_data(self, date: datetime.datetime) -> WeaData:
        try:
            return self._data[date]
        except KeyError:
            raise MarchFailure(f"No weather data for {date}") from None


@dataclass
class SyntheticWeather:
    """Constant weather, whatever the date."""

    dni: float = 0.0
    dhi: float = 0.0
    dry_bulb: float = 20.0
    dew_point: float = 10.0
    horizontal_ir: Optional[float] = None
    cc: float = 0.0

    def get_weather_data(self, date: datetime.datetime) -> WeaData:
        return WeaData(
            time=date,
            dni=self.dni,
            dhi=self.dhi,
            cc=self.cc,
            dry_bulb=self.dry_bulb,
            dew_point=self.dew_point,
            horizontal_ir=self.horizontal_ir,
        )
