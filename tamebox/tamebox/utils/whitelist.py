"""
Default policy for the host built by `tamebox.utils.primordials`.

Each record describes one primordial reachable from the global object:

* `True`: keep the data property and tame its value.
* `False`: remove it.
* `"*"`: keep it here and on every object that inherits from here.
* `"maybeAccessor"`: keep it whether it is a data or an accessor property.
* a nested record: keep it and describe the object it holds.

Names absent from both an object's own record and its ancestors' records are
removed.
"""

t = True

# Members every function shares through Function.prototype.
FunctionPrototype = {
    "length": "*",
    "name": "*",
    "prototype": "*",
    "constructor": "*",
    "toString": "*",
    "apply": t,
    "call": t,
    "bind": t,
    # Repaired into poisoned accessors when the host leaks them as data.
    "caller": "maybeAccessor",
    "arguments": "maybeAccessor",
}

ObjectPrototype = {
    "constructor": "*",
    "toString": "*",
    "valueOf": t,
    "hasOwnProperty": t,
    "isPrototypeOf": t,
    "propertyIsEnumerable": t,
}

ErrorPrototype = {
    "constructor": "*",
    "name": "*",
    "message": "*",
}

ErrorSubclass = {
    "prototype": {},
}

IteratorPrototype = {
    "next": "*",
    "constructor": False,
}

WHITELIST = {
    "Infinity": t,
    "NaN": t,
    "undefined": t,
    "isFinite": t,
    "isNaN": t,
    "parseInt": t,
    "parseFloat": t,
    "Object": {
        "prototype": ObjectPrototype,
        "create": t,
        "keys": t,
        "freeze": t,
        "isFrozen": t,
        "isExtensible": t,
        "getPrototypeOf": t,
        "defineProperty": t,
        "is": t,
    },
    "Function": {
        "prototype": FunctionPrototype,
    },
    "Array": {
        "prototype": {
            "length": t,
            "push": t,
            "pop": t,
            "indexOf": t,
            "includes": t,
            "join": t,
            "concat": t,
            "slice": t,
            "reverse": t,
            "map": t,
            "filter": t,
        },
        "isArray": t,
        "of": t,
        "from": t,
    },
    "String": {
        "prototype": {
            "length": t,
            "toUpperCase": t,
            "toLowerCase": t,
            "trim": t,
            "indexOf": t,
            "includes": t,
            "startsWith": t,
            "endsWith": t,
            "charAt": t,
            "slice": t,
            "split": t,
            "repeat": t,
            "concat": t,
        },
        "fromCharCode": t,
    },
    "Number": {
        "prototype": {
            "toFixed": t,
        },
        "isInteger": t,
        "isFinite": t,
        "isNaN": t,
        "parseInt": t,
        "parseFloat": t,
        "MAX_SAFE_INTEGER": t,
        "EPSILON": t,
    },
    "Boolean": {
        "prototype": {},
    },
    "Math": {
        "abs": t,
        "floor": t,
        "ceil": t,
        "round": t,
        "trunc": t,
        "sign": t,
        "sqrt": t,
        "pow": t,
        "max": t,
        "min": t,
        "hypot": t,
        "PI": t,
        "E": t,
        # Nondeterminism is a channel; confined code gets entropy only by grant.
        "random": False,
    },
    "JSON": {
        "parse": t,
        "stringify": t,
    },
    "Error": {
        "prototype": ErrorPrototype,
    },
    "TypeError": ErrorSubclass,
    "RangeError": ErrorSubclass,
    "ReferenceError": ErrorSubclass,
    "SyntaxError": ErrorSubclass,
    "vm": {
        "anonIntrinsics": {
            "ThrowTypeError": {},
            "IteratorPrototype": IteratorPrototype,
            "ArrayIteratorPrototype": {},
        },
        "log": t,
        "def": t,
        "is": t,
        "Nat": t,
        "confine": t,
        "compileExpr": t,
        "makeImports": t,
        "copyToImports": t,
    },
}
