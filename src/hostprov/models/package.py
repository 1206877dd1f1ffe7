"""Package set model."""

from typing import Iterable, Iterator, List


class PackageSet:
    """Ordered set of OS package names.

    Duplicates are dropped keeping the first occurrence, so the install
    command line is stable from run to run.
    """

    def __init__(self, packages: Iterable[str] = ()):
        self._packages: List[str] = []
        for name in packages:
            name = name.strip()
            if not name:
                raise ValueError("Empty package name")
            if name not in self._packages:
                self._packages.append(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self._packages)

    def __len__(self) -> int:
        return len(self._packages)

    def __contains__(self, name: object) -> bool:
        return name in self._packages

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageSet):
            return NotImplemented
        return set(self._packages) == set(other._packages)

    def __repr__(self) -> str:
        return f"PackageSet({self._packages!r})"

    def union(self, other: Iterable[str]) -> "PackageSet":
        return PackageSet([*self._packages, *other])

    def missing_from(self, installed: Iterable[str]) -> List[str]:
        """Names not present in `installed`, in declaration order."""
        installed = set(installed)
        return [name for name in self._packages if name not in installed]

    def to_list(self) -> List[str]:
        return list(self._packages)
