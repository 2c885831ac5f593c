"""Queue job handlers"""
