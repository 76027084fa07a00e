import unittest

from checkwindow.regions import (
    ACCESSIBILITY_REGION_TYPES,
    calculate_selectors_to_find_regions_for,
    validate_accessibility,
)
from rendering.models import Region


class TestSelectorsToFindRegionsFor(unittest.TestCase):
    def test_no_regions_full_page(self):
        plan = calculate_selectors_to_find_regions_for(size_mode="full-page")
        self.assertIsNone(plan.selectors_to_find_regions_for)
        self.assertEqual(plan.match_regions(None), (None, {}))

    def test_selector_target_comes_first(self):
        plan = calculate_selectors_to_find_regions_for(
            size_mode="selector",
            selector=".target",
            ignore=[{"selector": ".ad"}, {"selector": "//footer", "type": "xpath"}],
        )
        self.assertEqual(
            plan.selectors_to_find_regions_for,
            [".target", ".ad", {"type": "xpath", "selector": "//footer"}],
        )

    def test_regions_are_relative_to_target_element(self):
        plan = calculate_selectors_to_find_regions_for(
            size_mode="full-selector",
            selector=".target",
            ignore=[{"selector": ".ad"}],
            floating={"left": 1, "top": 2, "width": 3, "height": 4, "maxUpOffset": 5},
        )
        target = Region(left=100, top=100, width=50, height=50)

        image_region, regions = plan.match_regions([
            [target],
            [Region(left=120, top=130, width=10, height=10), Region(left=90, top=90, width=5, height=5)],
        ])

        self.assertEqual(image_region, target)
        self.assertEqual(regions["ignore"], [
            {"width": 10, "height": 10, "left": 20, "top": 30},
            {"width": 5, "height": 5, "left": 0, "top": 0},
        ])
        self.assertEqual(regions["floating"], [{
            "left": 1, "top": 2, "width": 3, "height": 4,
            "maxUpOffset": 5, "maxDownOffset": None, "maxLeftOffset": None, "maxRightOffset": None,
        }])

    def test_window_regions_keep_page_coordinates(self):
        plan = calculate_selectors_to_find_regions_for(
            size_mode="full-page",
            accessibility=[{"selector": ".text", "accessibilityType": "RegularText"}],
            layout={"left": 0, "top": 0, "width": 10, "height": 10},
        )
        self.assertEqual(plan.selectors_to_find_regions_for, [".text"])

        image_region, regions = plan.match_regions([[Region(left=5, top=6, width=7, height=8)]])

        self.assertIsNone(image_region)
        self.assertEqual(regions["accessibility"], [
            {"left": 5, "top": 6, "width": 7, "height": 8, "accessibilityType": "RegularText"},
        ])
        self.assertEqual(regions["layout"], [{"left": 0, "top": 0, "width": 10, "height": 10}])

    def test_selector_without_matches_yields_nothing(self):
        plan = calculate_selectors_to_find_regions_for(size_mode="full-page", strict=[{"selector": ".gone"}])
        _, regions = plan.match_regions([[]])
        self.assertEqual(regions, {"strict": []})


class TestValidateAccessibility(unittest.TestCase):
    def test_valid_types(self):
        regions = [{"selector": ".a", "accessibilityType": t} for t in ACCESSIBILITY_REGION_TYPES]
        self.assertIsNone(validate_accessibility(regions))
        self.assertIsNone(validate_accessibility(None))

    def test_invalid_type_is_reported(self):
        error = validate_accessibility({"left": 0, "top": 0, "width": 1, "height": 1, "accessibilityType": "Shiny"})
        self.assertIn("Shiny", error)
        self.assertIn("GraphicalObject", error)


if __name__ == "__main__":
    unittest.main()
