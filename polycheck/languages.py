"""
Programming languages that solutions, generators, checkers and
validators can be written in, i.e., how to recognise their source files
and how to compile and run them.
"""
import fnmatch
import re
import string

from . import config


class LanguageConfigError(Exception):
    """Exception class for errors in language configuration."""
    pass


_ENTRY_POINTS = frozenset(['binary', 'mainfile', 'mainclass', 'Mainclass'])


class Language(object):
    """
    Class representing a single language.
    """

    __KEYS = {'name': str, 'priority': int, 'files': str, 'shebang': str,
              'compile': str, 'run': str}
    __VARIABLES = frozenset(['path', 'files']) | _ENTRY_POINTS

    def __init__(self, lang_id, lang_spec):
        """Construct language object

        Args:
            lang_id (str): language identifier, lower case letters and
                digits starting with a letter
            lang_spec (dict): dictionary containing the specification
                of the language.
        """
        if re.fullmatch('[a-z][a-z0-9]*', lang_id) is None:
            raise LanguageConfigError('Invalid language ID "%s"' % lang_id)
        self.lang_id = lang_id
        self.name = None
        self.priority = None
        self.files = None
        self.shebang = None
        self.compile = None
        self.run = None
        self.update(lang_spec)

    def __str__(self):
        return self.name

    def get_source_files(self, file_list):
        """Given a list of files, determine which ones would be considered
        source files for the language.

        Args:
            file_list (list of str): list of file names
        """
        return [file_name for file_name in file_list
                if any(fnmatch.fnmatch(file_name, glob) for glob in self.files)
                and self.__matches_shebang(file_name)]

    def update(self, values):
        """Update a language specification with new values.

        Args:
            values (dict): dictionary containing new values for some
                subset of the language properties.
        """
        for (key, value) in values.items():
            expected = Language.__KEYS.get(key)
            if expected is None:
                raise LanguageConfigError(
                    'Unknown key "%s" specified for language %s'
                    % (key, self.lang_id))
            # bool is an int, but not a priority
            if not isinstance(value, expected) or isinstance(value, bool):
                raise LanguageConfigError(
                    'Language %s: %s must be %s but is %s.'
                    % (self.lang_id, key, expected.__name__, type(value)))

            if key == 'shebang':
                self.shebang = re.compile(value)
            elif key == 'files':
                self.files = value.split()
            else:
                setattr(self, key, value)

        self.__check()

    def __check(self):
        """Check that all mandatory fields are provided, that the
        compile and run templates only use known variables, and that
        they agree on exactly one entry point.
        """
        for key in ('name', 'priority', 'files', 'run'):
            if getattr(self, key) is None:
                raise LanguageConfigError(
                    'Language %s has no %s' % (self.lang_id, key))

        variables = Language.__variables_in_command(self.run)
        if self.compile is not None:
            variables |= Language.__variables_in_command(self.compile)
        for unknown in variables - Language.__VARIABLES:
            raise LanguageConfigError(
                'Unknown variable "{%s}" used for language %s'
                % (unknown, self.lang_id))

        entry = variables & _ENTRY_POINTS
        if not entry:
            raise LanguageConfigError(
                'No entry point variable used for language %s' % self.lang_id)
        if len(entry) > 1:
            raise LanguageConfigError(
                'More than one entry point type variable used for language %s'
                % self.lang_id)

    @staticmethod
    def __variables_in_command(cmd):
        formatter = string.Formatter()
        return set(field for _, field, _, _ in formatter.parse(cmd)
                   if field is not None)

    def __matches_shebang(self, filename):
        if self.shebang is None:
            return True
        with open(filename, 'r', errors='replace') as f_in:
            shebang_line = f_in.readline()
        return self.shebang.search(shebang_line) is not None


class Languages(object):
    """A set of languages, keyed by language id."""

    def __init__(self, data=None):
        """Create a set of languages from a dict.

        Args:
            data (dict): dictionary containing configuration.
                If None, resulting set of languages is empty.
                See documentation of update() method below for details.
        """
        self.languages = {}
        if data is not None:
            self.update(data)

    def __iter__(self):
        return iter(self.languages.values())

    def __len__(self):
        return len(self.languages)

    def detect_language(self, file_list):
        """Auto-detect language for a set of files.

        The language claiming the most files wins, ties are broken by
        priority.

        Args:
            file_list (list of str): list of file names

        Returns:
            Language object for the detected language or None if the
            list of files did not match any language in the set.
        """
        best = None
        best_key = (0, None)
        for lang in self.languages.values():
            count = len(lang.get_source_files(file_list))
            if count == 0:
                continue
            if best is None or (count, lang.priority) > best_key:
                best = lang
                best_key = (count, lang.priority)
        return best

    def get(self, lang_id):
        if not isinstance(lang_id, str):
            raise LanguageConfigError(
                'Config file error: language IDs must be strings, but %s is %s.'
                % (lang_id, type(lang_id)))
        return self.languages.get(lang_id, None)

    def update(self, data):
        """Update the set with language configuration data from a dict.

        Args:
            data (dict): dictionary mapping language ids to (possibly
                partial) language specifications.  A language already
                in the set is updated rather than replaced.
        """
        if not isinstance(data, dict):
            raise LanguageConfigError(
                'Config file error: content must be a dictionary, but is %s.'
                % (type(data)))

        for (lang_id, lang_spec) in data.items():
            if not isinstance(lang_id, str):
                raise LanguageConfigError(
                    'Config file error: language IDs must be strings, but %s is %s.'
                    % (lang_id, type(lang_id)))
            if isinstance(lang_spec, Language):
                self.languages[lang_id] = lang_spec
            elif not isinstance(lang_spec, dict):
                raise LanguageConfigError(
                    'Config file error: language spec must be a dictionary, but spec of language %s is %s.'
                    % (lang_id, type(lang_spec)))
            elif lang_id in self.languages:
                self.languages[lang_id].update(lang_spec)
            else:
                self.languages[lang_id] = Language(lang_id, lang_spec)

        priorities = {}
        for (lang_id, lang) in self.languages.items():
            if lang.priority in priorities:
                raise LanguageConfigError(
                    'Languages %s and %s both have priority %d.'
                    % (lang_id, priorities[lang.priority], lang.priority))
            priorities[lang.priority] = lang_id


def load_language_config():
    """Load language configuration.

    Returns:
        Languages object for the set of languages.
    """
    return Languages(config.load_config('languages.yaml'))
