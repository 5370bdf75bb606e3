"""Print the working directory and exit."""

import os
import sys

sys.stdout.write(os.getcwd())
sys.stdout.flush()
