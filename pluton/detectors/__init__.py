"""Vulnerability detectors for Solana / Anchor programs."""

from pluton.detectors.base import Detector, DetectionContext, Finding, Category
from pluton.detectors.cpi import (
    ArbitraryCpiDetector,
    GenericCpiValidationHintDetector,
    UncheckedProgramFieldDetector,
)
from pluton.detectors.reinit import MissingIsInitializedFieldDetector, MissingReinitCheckDetector
from pluton.detectors.remaining_accounts import UncheckedRemainingAccountsDetector
from pluton.detectors.account_fields import (
    AtaInitModeDetector,
    HardcodedBumpSeedDetector,
    InitIfNeededUsageDetector,
    SpaceWithoutInitDetector,
    UncheckedAccountInfoFieldDetector,
)
from pluton.detectors.arithmetic import ArithmeticOverflowDetector, LargeIntegerLiteralDetector
from pluton.detectors.bump_seed import BumpSeedNonCanonicalDetector
from pluton.detectors.error_enum import ErrorEnumDetector
from pluton.detectors.casts import AccountInfoCastDetector

ALL_DETECTORS = [
    ArbitraryCpiDetector,
    UncheckedProgramFieldDetector,
    MissingReinitCheckDetector,
    UncheckedRemainingAccountsDetector,
    UncheckedAccountInfoFieldDetector,
    ArithmeticOverflowDetector,
    LargeIntegerLiteralDetector,
    BumpSeedNonCanonicalDetector,
    MissingIsInitializedFieldDetector,
    AtaInitModeDetector,
    GenericCpiValidationHintDetector,
    HardcodedBumpSeedDetector,
    InitIfNeededUsageDetector,
    SpaceWithoutInitDetector,
    ErrorEnumDetector,
    AccountInfoCastDetector,
]

__all__ = [
    "Detector",
    "DetectionContext",
    "Finding",
    "Category",
    "ALL_DETECTORS",
    "ArbitraryCpiDetector",
    "UncheckedProgramFieldDetector",
    "MissingReinitCheckDetector",
    "UncheckedRemainingAccountsDetector",
    "UncheckedAccountInfoFieldDetector",
    "ArithmeticOverflowDetector",
    "LargeIntegerLiteralDetector",
    "BumpSeedNonCanonicalDetector",
    "MissingIsInitializedFieldDetector",
    "AtaInitModeDetector",
    "GenericCpiValidationHintDetector",
    "HardcodedBumpSeedDetector",
    "InitIfNeededUsageDetector",
    "SpaceWithoutInitDetector",
    "ErrorEnumDetector",
    "AccountInfoCastDetector",
]
