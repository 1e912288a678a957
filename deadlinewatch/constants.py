"""
Constants and default configuration for Deadlinewatch.
"""

CONFIG_FILES = [
    '.deadlinewatch.yaml',
    '.deadlinewatch.yml',
    '.deadlinewatch.toml',
    '.deadlinewatch.json',
]

RISK_AXES = ['deadline', 'complexity', 'resource', 'dependency', 'external']

DEFAULT_CONFIG = {
    'prediction': {
        'confidence_threshold': 0.7,
        'max_history_days': 365,
        'working_hours_per_day': 8.0,
        'skill_increment': 0.1,
        'skill_cap': None,
        'quality_history_limit': 100,
        'default_method': 'ensemble',
        'cache_expiry': 300,
    },
    'monitoring': {
        'monitoring_interval': 60,
        'alert_cooldown': 300,
        'snapshot_retention_days': 30,
        'max_workers': 1,
        'risk_thresholds': {
            'deadline': 0.7,
            'complexity': 0.6,
            'resource': 0.8,
            'dependency': 0.5,
            'external': 0.8,
        },
        'check_intervals': {
            'deadline': 300,
            'complexity': 600,
            'resource': 300,
            'dependency': 900,
            'external': 900,
        },
    },
    'alerts': {
        'channels': ['log'],
        'alert_file': None,
        'webhook_url': None,
    },
    'logging': {
        'level': 'INFO',
    },
}
