"""
Utility modules for the crawl engine.
"""

from .config import Config, ConfigManager, CrawlerConfig, load_config, get_config

__all__ = ['Config', 'ConfigManager', 'CrawlerConfig', 'load_config', 'get_config']
