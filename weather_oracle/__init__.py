"""Weather Oracle — calibrated daily-high predictions with an accuracy ledger."""

from .config import Config
from .distribution import erf, normal_cdf, normal_quantile
from .intervals import confidence_intervals
from .ledger import PredictionLedger, PredictionRecord
from .metrics import aggregate
from .probability import Bracket, CalibrationEngine, CalibrationResult, SigmaTable
from .resolution import resolve_pending
from .service import WeatherOracle
from .stations import StationDirectory, StationProfile, default_directory

