# Copyright 2015 The TensorFlow Authors. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

"""Module proxy that defers the import of heavy dependencies.

The graph and elimination core only deals in integers; `sympy` and `networkx`
are pulled in the first time an attribute of the proxy is accessed.
"""

import importlib
import types

from daealias.logging import logger


_LAZY_LOADER_PREFIX = "_ll"


class LazyLoader(types.ModuleType):
    """Lazily import `name` and bind it as `local_name` in the parent module."""

    def __init__(
        self, local_name, parent_module_globals, name, warning=None, error_message=None
    ):  # pylint: disable=super-init-not-called
        self._ll_local_name = local_name
        self._ll_parent_module_globals = parent_module_globals
        self._ll_warning = warning
        self._ll_error_message = error_message

        super().__init__(name)

    def _load(self):
        try:
            module = importlib.import_module(self.__name__)
        except ImportError as e:
            message = self._ll_error_message or f"Could not import module {self.__name__}"
            raise ImportError(message) from e

        # Replace the proxy in the parent's namespace so later lookups are direct.
        self._ll_parent_module_globals[self._ll_local_name] = module

        if self._ll_warning:
            logger.warning(self._ll_warning)
            self._ll_warning = None

        self.__dict__.update(module.__dict__)
        return module

    def __getattr__(self, name):
        module = self._load()
        return getattr(module, name)

    def __dir__(self):
        module = self._load()
        return dir(module)

    def __repr__(self):
        # repr must not trigger the import.
        return f"<LazyLoader {self.__name__} as {self._ll_local_name}>"

    def __reduce__(self):
        return importlib.import_module, (self.__name__,)
