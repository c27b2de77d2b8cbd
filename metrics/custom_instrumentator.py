from prometheus_fastapi_instrumentator import Instrumentator

instrumentator = Instrumentator(
    should_ignore_untemplated=True,      # /locations/cities/{city} not /locations/cities/pune
    excluded_handlers=["/metrics", "/api/v1/health"],
    should_instrument_requests_inprogress=True,
    should_group_status_codes=False,
)
