"""HTTP handlers for the sample service."""

from service import UserService


def handle_login(request):
    service = UserService()
    return service.authenticate(request["user"], request["password"])


def handle_report(request):
    return build_report(request["query"])


def build_report(query):
    return run_report_query(query)
