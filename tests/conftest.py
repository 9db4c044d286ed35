import warnings

# Ignore warnings from third-party packages
warnings.filterwarnings("ignore", category=DeprecationWarning, module="granian.*")

# Import relay fixtures so they are available to all tests
from tests.fixtures.relay_fixtures import *  # noqa: E402, F403
