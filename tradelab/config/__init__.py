"""TradeLab Configuration Module"""
from .config_manager import ConfigurationManager, configure_logging, get_config_manager

__all__ = ['ConfigurationManager', 'configure_logging', 'get_config_manager']
