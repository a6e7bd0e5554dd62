"""Static catalog of purchasable credit packages."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from .exceptions import UnknownPackageError
from .models import CreditPackage


@dataclass(frozen=True)
class PackageDefinition:
    """Describes a credit bundle and its price in minor currency units."""

    package_id: int
    credits: int
    price: int
    popular: bool = False

    def to_package(self, credits_per_plan: int) -> CreditPackage:
        return CreditPackage(
            package_id=self.package_id,
            credits=self.credits,
            price=self.price,
            popular=self.popular,
            plans=self.credits // max(1, credits_per_plan),
        )


DEFAULT_PACKAGES: Tuple[PackageDefinition, ...] = (
    PackageDefinition(package_id=1, credits=500, price=999),
    PackageDefinition(package_id=2, credits=1200, price=1999, popular=True),
    PackageDefinition(package_id=3, credits=2500, price=3999),
)

_PACKAGES_BY_ID: Dict[int, PackageDefinition] = {package.package_id: package for package in DEFAULT_PACKAGES}


def list_packages(credits_per_plan: int = 100) -> Tuple[CreditPackage, ...]:
    return tuple(package.to_package(credits_per_plan) for package in DEFAULT_PACKAGES)


def get_package(package_id: int, credits_per_plan: int = 100) -> CreditPackage:
    definition = _PACKAGES_BY_ID.get(package_id)
    if definition is None:
        raise UnknownPackageError(package_id)
    return definition.to_package(credits_per_plan)


__all__ = ["DEFAULT_PACKAGES", "PackageDefinition", "get_package", "list_packages"]
