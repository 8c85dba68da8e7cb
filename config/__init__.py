# Configuration package
from .settings import Settings, GWEI
