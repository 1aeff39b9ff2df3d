import os

basedir = os.path.abspath(os.path.dirname(__file__))

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, '..', 'cityscore.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Wall-clock budget for one formula execution (ms)
    SANDBOX_TIMEOUT_MS = int(os.environ.get('SANDBOX_TIMEOUT_MS', '1000'))
    # Capture print() output and per-line counts. Observational only.
    SANDBOX_DEBUG = os.environ.get('SANDBOX_DEBUG', '0').lower() in ('1', 'true', 'yes')
    # Optional: 'fork' / 'spawn' / 'forkserver'. Empty picks fork where available.
    SANDBOX_START_METHOD = os.environ.get('SANDBOX_START_METHOD', '')
    # Formula complexity ceilings
    MAX_FORMULA_LINES = int(os.environ.get('MAX_FORMULA_LINES', '1000'))
    MAX_FORMULA_NODES = int(os.environ.get('MAX_FORMULA_NODES', '20000'))
    MAX_FORMULA_DEPTH = int(os.environ.get('MAX_FORMULA_DEPTH', '100'))
    # Live compile debounce (ms); a newer request for the same editor supersedes it
    COMPILE_DEBOUNCE_MS = int(os.environ.get('COMPILE_DEBOUNCE_MS', '300'))
    # Base scoring
    ROAD_NETWORK_PENALTY = int(os.environ.get('ROAD_NETWORK_PENALTY', '1'))
    CLUSTER_MULTIPLIERS = os.environ.get('CLUSTER_MULTIPLIERS', '{}')
    ZONE_TYPES = os.environ.get('ZONE_TYPES', 'residential,commercial,industrial,park')
