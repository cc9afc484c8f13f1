"""Loan Origination API - Services"""
