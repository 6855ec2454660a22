# pim/domains/__init__.py
