from printstore.common.logging_setup import get_logger

logger = get_logger("printstore.pricing")

CUSTOM_DESIGN_LINE_NAME = "Custom design"
