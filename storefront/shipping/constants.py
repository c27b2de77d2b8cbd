from storefront.common.circuit_breaker import CircuitBreaker

MANUAL_COURIER = "India Post"
MANUAL_ADVISORY = "Delivery in 5-7 days via India Post. Tracking is not available for this pincode."

# guards the degradable check-pincode and serviceability reads
shipping_circuit = CircuitBreaker("shipping", failure_threshold=3, recovery_timeout=30.0)
