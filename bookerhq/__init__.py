"""BookerHQ web API"""
