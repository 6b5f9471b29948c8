"""
Notification Dispatcher

Forwards engine results to whatever UI channel subscribes.
"""
