"""
FILE DESCRIPTION: Maps user region lists to the selectors sent with a render and back to match regions.
KEY FUNCTIONS/CLASSES: calculate_selectors_to_find_regions_for, SelectorRegionPlan, validate_accessibility
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from rendering.models import Region

SELECTOR_SIZE_MODES = ("selector", "full-selector")
REGION_KINDS = ("ignore", "layout", "strict", "content", "accessibility", "floating")
FLOATING_OFFSETS = ("maxUpOffset", "maxDownOffset", "maxLeftOffset", "maxRightOffset")

ACCESSIBILITY_REGION_TYPES = ("IgnoreContrast", "RegularText", "LargeText", "BoldText", "GraphicalObject")


class InvalidAccessibilityError(ValueError):
    pass


def _selector_object(region: Dict[str, Any]) -> Any:
    if region.get("type") in ("xpath", "css"):
        return {"type": region["type"], "selector": region["selector"]}
    return region["selector"]


def _as_list(regions) -> List[Dict[str, Any]]:
    return list(regions) if isinstance(regions, (list, tuple)) else [regions]


@dataclass
class SelectorRegionPlan:
    size_mode: Optional[str]
    user_regions: Dict[str, List[Dict[str, Any]]]
    selectors_to_find_regions_for: Optional[List[Any]] = None

    def match_regions(self, selector_regions: Optional[List[List[Region]]]
                      ) -> Tuple[Optional[Region], Dict[str, List[Dict[str, Any]]]]:
        """
        Pairs the grid's resolved selector regions (index-aligned with
        selectors_to_find_regions_for) with the user's region lists.
        Returns the target element's region, if any, and the regions per kind.
        """
        selector_regions = selector_regions or []
        image_location_region = None
        if self.size_mode in SELECTOR_SIZE_MODES and selector_regions and selector_regions[0]:
            image_location_region = selector_regions[0][0]

        next_index = 1 if image_location_region else 0
        all_regions: Dict[str, List[Dict[str, Any]]] = {}

        for kind, user_input in self.user_regions.items():
            values = []
            for user_region in user_input:
                if user_region.get("selector"):
                    coded = selector_regions[next_index] if next_index < len(selector_regions) else None
                    next_index += 1
                else:
                    coded = [user_region]

                for region in coded or []:
                    values.append(_with_user_input(_regionify(region, image_location_region), user_region, kind))
            all_regions[kind] = values

        return image_location_region, all_regions


def calculate_selectors_to_find_regions_for(size_mode: Optional[str] = None, selector: Any = None,
                                            ignore=None, layout=None, strict=None, content=None,
                                            accessibility=None, floating=None) -> SelectorRegionPlan:
    selectors = [selector] if size_mode in SELECTOR_SIZE_MODES else None

    given = dict(ignore=ignore, layout=layout, strict=strict, content=content,
                 accessibility=accessibility, floating=floating)
    user_regions = {kind: _as_list(given[kind]) for kind in REGION_KINDS if given[kind]}

    if not user_regions:
        return SelectorRegionPlan(size_mode, user_regions, selectors)

    # Duplicates are kept: the grid answers index-aligned with this list.
    region_selectors = [
        _selector_object(region)
        for regions in user_regions.values()
        for region in regions
        if region.get("selector")
    ]
    return SelectorRegionPlan(size_mode, user_regions, (selectors or []) + region_selectors)


def _regionify(region, image_location_region: Optional[Region]) -> Dict[str, Any]:
    if isinstance(region, Region):
        if image_location_region:
            return {
                "width": region.width,
                "height": region.height,
                "left": max(0, region.left - image_location_region.left),
                "top": max(0, region.top - image_location_region.top),
            }
        return region.to_json()
    return dict(region)


def _with_user_input(region: Dict[str, Any], user_region: Dict[str, Any], kind: str) -> Dict[str, Any]:
    if kind == "accessibility":
        region["accessibilityType"] = user_region.get("accessibilityType")
    elif kind == "floating":
        for offset in FLOATING_OFFSETS:
            region[offset] = user_region.get(offset)
    return region


def validate_accessibility(accessibility) -> Optional[str]:
    """Returns a description of every invalid accessibility region, or None."""
    if not accessibility:
        return None

    errors = []
    for region in _as_list(accessibility):
        accessibility_type = region.get("accessibilityType")
        if accessibility_type not in ACCESSIBILITY_REGION_TYPES:
            errors.append(
                f"The region {region} has an invalid accessibilityType of: {accessibility_type}. "
                f"It must be one of: {', '.join(ACCESSIBILITY_REGION_TYPES)}"
            )
    return "\n".join(errors) or None
