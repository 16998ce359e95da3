"""Unified command-line interface for receiptfix.

Usage:
    receiptfix correct receipt.json
    receiptfix correct receipt.txt --source text --province ON
    receiptfix correct tabscanner.json --source tabscanner --hints hints.json --summary
    receiptfix scan <image> --mode enforce
"""
