import sys

from .ww import cli

sys.exit(cli())
