"""Rate adaptation, statistics and configuration"""
