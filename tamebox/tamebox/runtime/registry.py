from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from tamebox.runtime.graph import HostObject
from tamebox.runtime.severity import Severity


Detector = Callable[[HostObject], bool]
Applicator = Callable[[HostObject], None]


@dataclass(frozen=True)
class PatchDescriptor:
    name: str
    detector: Detector
    applicator: Applicator
    severity: Severity
    region: str = ""
    description: str = ""


class PatchCatalog:
    """
    An ordered catalog of repair patches.

    Patches run in registration order; later detectors may depend on the
    post-state of earlier repairs, so the order is part of the catalog.
    """

    def __init__(self) -> None:
        self._patches: dict[str, PatchDescriptor] = {}

    def register(
        self,
        name: str,
        detector: Detector,
        applicator: Applicator,
        severity: Severity,
        *,
        region: str = "",
        description: str = "",
    ) -> PatchDescriptor:
        if name in self._patches:
            raise ValueError(f"Patch already registered: {name}")
        patch = PatchDescriptor(
            name=name,
            detector=detector,
            applicator=applicator,
            severity=Severity.parse(severity),
            region=region,
            description=description,
        )
        self._patches[name] = patch
        return patch

    def get(self, name: str) -> PatchDescriptor | None:
        return self._patches.get(name)

    def names(self) -> list[str]:
        return list(self._patches)

    def __iter__(self):
        return iter(list(self._patches.values()))

    def __len__(self) -> int:
        return len(self._patches)


def build_default_catalog() -> PatchCatalog:
    """
    Build the default catalog of repairs for hosts built by
    `tamebox.utils.primordials`.
    """

    # Import lazily to keep the runtime importable without the default host.
    import tamebox.utils.patches as patches

    catalog = PatchCatalog()
    for spec in patches.DEFAULT_PATCHES:
        catalog.register(
            spec.name,
            spec.detect,
            spec.repair,
            spec.severity,
            region=spec.region,
            description=spec.description,
        )
    return catalog
