"""Parameter fuzzing for parameter-less pages."""

from .param_validator import ResponseSignature, SmartParamValidator, ValidationResult, signature_similarity
from .pattern_fuzzer import FUZZ_PARAMS, FUZZ_VALUES, FuzzOutcome, PatternFuzzer


__all__ = [
    "FUZZ_PARAMS",
    "FUZZ_VALUES",
    "FuzzOutcome",
    "PatternFuzzer",
    "ResponseSignature",
    "SmartParamValidator",
    "ValidationResult",
    "signature_similarity",
]
