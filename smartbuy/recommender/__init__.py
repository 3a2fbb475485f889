"""Scoring engine for SmartBuy Suggest.

This module contains the feature extractor, the logistic purchase-propensity
model (batch trainer, online updater, ranker), the household frequency
tracker and the record layer they share.
"""
