from .extractor import FitnessExtractor
from .coaching import CoachInsights
from .energy import compute_tdee, tdee_for_profile, age_on
from .reconciler import apply_entry, remove_entry, process_text_log, ReconcileResult

__all__ = [
    'FitnessExtractor',
    'CoachInsights',
    'compute_tdee',
    'tdee_for_profile',
    'age_on',
    'apply_entry',
    'remove_entry',
    'process_text_log',
    'ReconcileResult'
]
