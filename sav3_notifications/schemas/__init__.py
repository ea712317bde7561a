# Schemas package (re-export feature modules for stable imports)
from .common.common import *
from .notifications.notification import *
from .settings.settings import *
from .devices.device import *
from .campaigns.campaign import *
