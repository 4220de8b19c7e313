SERVICE_NAME = "metered-inference-gateway"
__version__ = "0.2.0"
