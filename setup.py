import codecs

import setuptools


def long_description():
    with codecs.open("README.md", encoding="utf8") as f:
        return f.read()


setuptools.setup(
    name="chaykin",
    version="0.1.0",
    description="A Gemini server that publishes RDF graphs as gemtext",
    install_requires=[
        "twisted>=20.3.0",
        # Requirements below are used by twisted[security] and the TLS setup
        "service_identity",
        "idna",
        "pyopenssl",
        "cryptography",
        "pyoxigraph>=0.4",
    ],
    extras_require={
        "test": ["pytest"],
    },
    long_description=long_description(),
    long_description_content_type="text/markdown",
    packages=["chaykin", "chaykin.app"],
    py_modules=["chaykin_client"],
    entry_points={
        "console_scripts": [
            "chaykin=chaykin.__main__:main",
            "chaykin-client=chaykin_client:run_client",
        ]
    },
    python_requires=">=3.8",
    keywords="gemini server rdf turtle linked-data twisted oxigraph",
    classifiers=[
        "Environment :: Web Environment",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Topic :: Internet",
        "Topic :: Database :: Front-Ends",
    ],
)
