"""
OrderBridge - order lifecycle management with marketplace, ERP, workflow and notification sync
"""
__version__ = "1.0.0"
