from typing import Any, Dict, Iterable, List, Optional


class ResourceCache:
    """
    FLOW: Keeps url -> value entries plus url -> dependency edges ->
    Resolves a url together with its dependency closure on lookup.
    Process-lifetime and unbounded; only explicit remove() drops a value.
    Dependency edges are stored apart from values so they survive remove().
    """

    def __init__(self):
        self._values: Dict[str, Any] = {}
        self._dependencies: Dict[str, List[str]] = {}

    def get_value(self, url: str) -> Optional[Any]:
        return self._values.get(url)

    def set_value(self, url: str, value: Any) -> Any:
        self._values[url] = value
        return value

    def set_dependencies(self, url: str, dependencies: Optional[Iterable[str]]) -> None:
        # Replaced wholesale, never merged.
        self._dependencies[url] = list(dependencies or [])

    def get_dependencies(self, url: str) -> Optional[List[str]]:
        return self._dependencies.get(url)

    def get_with_dependencies(self, url: str) -> Optional[Dict[str, Any]]:
        """
        Returns {url: value} for url and everything reachable through its
        dependency edges, or None when url itself has no value.
        Missing dependency values are skipped.
        """
        if url not in self._values:
            return None

        found: Dict[str, Any] = {}
        stack = [url]
        while stack:
            current = stack.pop()
            if current in found or current not in self._values:
                continue
            found[current] = self._values[current]
            for dependency in self._dependencies.get(current, []):
                if dependency not in found:
                    stack.append(dependency)
        return found

    def remove(self, url: str) -> None:
        self._values.pop(url, None)

    def __contains__(self, url: str) -> bool:
        return url in self._values

    def __len__(self) -> int:
        return len(self._values)
