"""Business domains: stylist services and their options"""
