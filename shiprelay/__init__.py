"""
Shipment relay: Shopify webhooks in, Blue Dart / Shiprocket tracking out.
"""
__version__ = "1.0.0"
