"""devweb -- transactional Node.js/Express project generator.

Turns a frozen :class:`~devweb.models.ProjectConfig` into a project on disk
with all-or-nothing semantics: directories, generated files, package-manager
installs and post-generation hooks either all land, or everything the run
created is removed again.
"""

__version__ = "0.1.0"
