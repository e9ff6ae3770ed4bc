"""Meter/reflector wire protocol, transports and run loops"""
