import pytest

from polycheck.run import command


posix = command.PosixCommandBuilder()
darwin = command.DarwinCommandBuilder()
windows = command.WindowsCommandBuilder()


def test_no_memory_limit():
    for builder in (posix, darwin, windows):
        assert builder.apply_memory_limit('./sol', None) == './sol'
        assert builder.apply_memory_limit('./sol', 0) == './sol'


def test_posix_ulimit():
    assert posix.apply_memory_limit('./sol', 256) == '(ulimit -v 262144; ./sol)'
    assert posix.apply_memory_limit('./sol < in > out', 1) == '(ulimit -v 1024; ./sol < in > out)'


def test_jvm_gets_heap_flag():
    for builder in (posix, darwin, windows):
        assert builder.apply_memory_limit('java -cp /tmp/x Main', 128) == 'java -Xmx128m -cp /tmp/x Main'
    assert command.is_jvm_command('java Main')
    assert not command.is_jvm_command('javac Main.java')
    assert not command.is_jvm_command('./java')


def test_kotlin_gets_heap_flag():
    kotlin = 'kotlin -Dfile.encoding=UTF-8 -J-Xss64m -cp /w/ MainKt'
    expected = 'kotlin -J-Xmx256m -Dfile.encoding=UTF-8 -J-Xss64m -cp /w/ MainKt'
    for builder in (posix, darwin, windows):
        assert builder.apply_memory_limit(kotlin, 256) == expected
    assert posix.build(kotlin, 256) == expected
    assert command.is_jvm_command(kotlin)
    assert not command.is_jvm_command('kotlinc -d /w/ -- main.kt')


def test_detection_only_platforms():
    assert darwin.apply_memory_limit('./sol', 256) == './sol'
    assert windows.apply_memory_limit('./sol', 256) == './sol'
    assert not darwin.enforces_memory_limit
    assert not windows.enforces_memory_limit
    assert posix.enforces_memory_limit


def test_posix_normalize_is_identity():
    assert posix.normalize('./sol arg/with/slash') == './sol arg/with/slash'


def test_windows_normalize():
    assert windows.normalize('./sol') == '.\\sol'
    assert windows.normalize('./bin/sol arg/x < in.txt') == '.\\bin\\sol arg/x < in.txt'
    assert windows.normalize('"./my dir/sol" a/b') == '".\\my dir\\sol" a/b'
    assert windows.normalize('python3 ./main.py') == 'python3 ./main.py'


def test_redirect():
    assert posix.redirect('./sol', 'in.txt', 'out dir/out.txt') == "./sol < in.txt > 'out dir/out.txt'"
    assert posix.redirect('./sol', infile='in.txt') == './sol < in.txt'
    assert posix.redirect('./sol') == './sol'
    assert windows.redirect('sol.exe', './tests/in.txt', '../out.txt') == 'sol.exe < ".\\tests\\in.txt" > "..\\out.txt"'


def test_build_limits_before_normalizing():
    assert posix.build('./sol < in', 2) == '(ulimit -v 2048; ./sol < in)'
    assert windows.build('./sol', 2) == '.\\sol'


def test_spawn_kwargs():
    pytest.importorskip('resource')
    kwargs = posix.spawn_kwargs()
    assert kwargs['start_new_session']
    assert callable(kwargs['preexec_fn'])
    assert 'creationflags' in windows.spawn_kwargs()


@pytest.mark.parametrize('platform, builder', [
    ('linux', command.PosixCommandBuilder),
    ('darwin', command.DarwinCommandBuilder),
    ('win32', command.WindowsCommandBuilder),
    ('freebsd13', command.PosixCommandBuilder),
])
def test_get_command_builder(platform, builder):
    assert type(command.get_command_builder(platform)) is builder
