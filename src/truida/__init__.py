"""
TRUIDA - Biometric Passenger Identity Workflow

Passengers enroll a face/fingerprint identity once and are re-verified at the
security, immigration and boarding checkpoints. This package implements the
matching and checkpoint-progression engine together with its record and
audit-log stores, enrollment, expiry sweeping and staff statistics.
"""

__version__ = "1.0.0"
__author__ = "TRUIDA Engineering"
__email__ = "engineering@truida.example"
