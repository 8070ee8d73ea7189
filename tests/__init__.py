"""
Fleetship test suite.

This package contains tests for the export subsystem:
- Exception, context and configuration tests
- Console, S3 and Kafka exporter tests
- Multi-exporter and service exporter tests
- Kafka batching logger and debug logger tests
"""
