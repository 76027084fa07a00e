from checkwindow.models import (
    StepState,
    TestController,
    GlobalState,
    OpenEyesConfig,
    CheckWindowConfig,
    CheckSettings,
    CheckArgs,
)
from checkwindow.throttle import Throat, GateTicket
from checkwindow.regions import calculate_selectors_to_find_regions_for, validate_accessibility, InvalidAccessibilityError
from checkwindow.browsers import validate_browsers, get_device_info, BrowserConfigError
from checkwindow.session import SessionWrapper
from checkwindow.orchestrator import (
    VisualTest,
    DisabledVisualTest,
    CheckWindowStep,
    RenderServices,
    TestAbortedError,
    VisualTestError,
)
