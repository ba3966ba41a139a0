"""``python -m mqtt_relay``"""

import sys

from mqtt_relay.cli import main

sys.exit(main())
