"""Loan Origination API - Data Models"""
from .dto import AssetFile, ClientIntake, ClonedForm

__all__ = [
    "AssetFile",
    "ClientIntake",
    "ClonedForm",
]
