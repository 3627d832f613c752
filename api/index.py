from mangum import Mangum
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

os.environ.setdefault("EARNLEDGER_ROOT_PATH", "/api")

from earnledger.api import app

handler = Mangum(app)
