import pytest

from staticd.decorators import on
from staticd.http.model import HTTPRequestError
from staticd.model import Service, mount
from staticd.routing import Dispatcher, Handler, Route

from conftest import bodyBytes, makeRequest, process


def test_route_prefix():
	route = Route("/")
	assert route.match("/") == ""
	assert route.match("/docs/index.html") == "docs/index.html"
	assert route.match("docs") is None
	assert Route("static").prefix == "/static"
	assert Route("/static/").match("/static") is None


def test_on_decorator_splits_methods():
	@on(GET_HEAD="/", POST="/upload")
	def handler(request, path):
		return None

	assert Handler.Get(handler).methods == {
		"GET": ["/"],
		"HEAD": ["/"],
		"POST": ["/upload"],
	}
	assert Handler.Get(lambda request, path: None) is None


def test_dispatcher():
	@on(GET_HEAD="/")
	def read(request, path):
		return None

	dispatcher = Dispatcher().register(Handler.Get(read))
	route, rest = dispatcher.match("HEAD", "/a/b")
	assert route and route.handler and route.handler.functor is read
	assert rest == "a/b"
	assert dispatcher.match("POST", "/a/b") == (None, None)
	assert sorted(dispatcher.methods("/a")) == ["GET", "HEAD"]
	assert not list(dispatcher.methods("*"))


class Echo(Service):
	@on(GET_HEAD="/")
	def read(self, request, path: str):
		if path == "teapot":
			raise HTTPRequestError("Nope", status=418)
		return request.respondText(f"Path: {path}")


def test_application_dispatch():
	app = mount(Echo())
	res = process(app, makeRequest("GET", "/hello/world"))
	assert res.status == 200
	assert bodyBytes(res) == b"Path: hello/world"
	res = process(app, makeRequest("DELETE", "/hello"))
	assert res.status == 405
	assert res.header("Allow") == "GET, HEAD"
	res = process(app, makeRequest("GET", "/teapot"))
	assert res.status == 418
	assert bodyBytes(res) == b"Nope"


def test_unmatched_path():
	app = mount(Echo())
	request = makeRequest("GET", "/")
	request.path = "*"
	assert process(app, request).status == 404


def test_service_mounted_once():
	service = Echo()
	mount(service)
	with pytest.raises(RuntimeError):
		mount(service)


# EOF
