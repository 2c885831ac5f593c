"""Services module for the Lookbook consistency core"""
