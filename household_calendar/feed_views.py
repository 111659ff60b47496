"""
Unauthenticated ICS feed consumed by calendar clients. The secret token in the
URL is the only credential.
"""

from typing import Annotated

from django.http import HttpResponse, HttpResponseNotFound, HttpResponseNotModified
from django.utils.http import http_date, parse_etags, parse_http_date_safe, quote_etag
from django.views.decorators.http import require_GET

from dependency_injector.wiring import Provide, inject

from household_calendar.services.calendar_feed_service import CalendarFeedService


ICS_CONTENT_TYPE = "text/calendar; charset=utf-8"
FEED_CACHE_CONTROL = "no-cache, must-revalidate"


def _is_not_modified(request, etag: str, last_modified: int) -> bool:
    # If-None-Match takes precedence over If-Modified-Since
    if_none_match = request.headers.get("If-None-Match")
    if if_none_match:
        etags = parse_etags(if_none_match)
        return "*" in etags or etag in etags

    if_modified_since = parse_http_date_safe(request.headers.get("If-Modified-Since", ""))
    return if_modified_since is not None and if_modified_since >= last_modified


@require_GET
@inject
def calendar_feed(
    request,
    token: str,
    calendar_feed_service: Annotated[CalendarFeedService, Provide["calendar_feed_service"]],
):
    feed = calendar_feed_service.generate_ics_feed(token)
    if feed is None:
        return HttpResponseNotFound()

    etag = quote_etag(feed.etag)
    last_modified = int(feed.last_modified.timestamp())
    if _is_not_modified(request, etag, last_modified):
        response = HttpResponseNotModified()
    else:
        response = HttpResponse(feed.content, content_type=ICS_CONTENT_TYPE)
        response["Content-Disposition"] = 'inline; filename="calendar.ics"'

    response["ETag"] = etag
    response["Last-Modified"] = http_date(last_modified)
    response["Cache-Control"] = FEED_CACHE_CONTROL
    return response
