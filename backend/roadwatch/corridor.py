from __future__ import annotations

from dataclasses import dataclass

from .geo import LatLon


@dataclass(frozen=True)
class Corridor:
    """The watched road segment and the probe points used against it."""

    label: str
    origin: LatLon
    destination: LatLon
    midpoint: LatLon
    # Ordered (lon, lat) vertices sent to map matching.
    trace: tuple[tuple[float, float], ...]


# Origin sits on the A417 north of Over Roundabout and the destination south of
# Maisemore, both outside the flood area. The midpoint is trace vertex 5.
A417_MAISEMORE = Corridor(
    label="A417 Maisemore - Over Roundabout",
    origin=LatLon(lat=51.889861372093094, lon=-2.275701917721733),
    destination=LatLon(lat=51.87532802057413, lon=-2.2633948798302583),
    midpoint=LatLon(lat=51.8840967853921, lon=-2.2672132659056956),
    trace=(
        (-2.2672733370840206, 51.888305076674015),
        (-2.2668528388330174, 51.88795285594853),
        (-2.2666425897068905, 51.88736890498075),
        (-2.2668528388330174, 51.886275135135094),
        (-2.2670030167795403, 51.88523695608393),
        (-2.2672132659056956, 51.8840967853921),
        (-2.2674986040050555, 51.88338300528022),
        (-2.2669491352942828, 51.87975523263444),
        (-2.2661210690561404, 51.87771425224227),
        (-2.2653322694025917, 51.876520401209234),
    ),
)
