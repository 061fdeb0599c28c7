"""
sync — per-platform engines that pull account, content and insights data
for one connection (or every active connection) into the store.
"""
