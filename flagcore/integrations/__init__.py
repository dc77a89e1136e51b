"""
This submodule contains factory and configuration methods for integrating the client with
components that are not part of its core, such as the in-process test data source in
:mod:`flagcore.integrations.test_data`.
"""
