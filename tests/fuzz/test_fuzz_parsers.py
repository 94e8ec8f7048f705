import random
import string
import pytest
from depwire.PARSERS.compose_parser import ComposeParser
from depwire.PARSERS.port_parser import parse_port_spec
from depwire.UTILS.string_interpolation import EnvironmentInterpolator
from depwire.exceptions import DescriptorError


def random_string(length, alphabet=string.printable):
    return ''.join(random.choice(alphabet) for _ in range(length))


def test_fuzz_compose_parser():
    parser = ComposeParser(context={})
    for _ in range(100):
        content = random_string(random.randint(0, 1000))
        try:
            parser.parse_from_string(content)
        except DescriptorError:
            # Junk must be rejected with a descriptor error, nothing else
            pass


def test_fuzz_port_parser():
    for _ in range(500):
        spec = random_string(random.randint(0, 20), string.digits + ":-/.tcpud")
        try:
            bindings = parse_port_spec(spec)
        except DescriptorError:
            continue
        assert all(1 <= b.container_port <= 65535 for b in bindings)


def test_fuzz_interpolator():
    for _ in range(200):
        template = random_string(random.randint(0, 200), string.ascii_letters + "${}:-+?_ ")
        try:
            EnvironmentInterpolator.interpolate(template, {'A': '1', 'B': ''})
        except KeyError:
            pass


@pytest.mark.parametrize("content", [
    "services:\n  api:\n    image: " + "a" * 10000 + "\n",
    "services:\n" + "".join(f"  s{i}:\n    image: x\n    depends_on: [s{i + 1}]\n" for i in range(200))
    + "  s200:\n    image: x\n",
])
def test_edge_cases_parsers(content):
    config = ComposeParser(context={}).parse_from_string(content)
    assert config.services
