import sys

from app.server import run

sys.exit(run())
