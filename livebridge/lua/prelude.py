"""
Builtin Lua prelude.

The helpers are compiled once per runtime as their own `prelude` chunk.
Scripts and commands receive them as locals declared on their first line,
so scripts see the helpers lexically while the scope itself stays free of
them, and the script's own line numbers are unchanged.
"""

PRELUDE_NAMES = (
    'vec3', 'quat', 'vec3_add', 'vec3_sub', 'vec3_scale', 'vec3_length',
    'quat_from_yaw', 'count', 'default',
)

PRELUDE = """\
local function vec3(x, y, z) return {x = x or 0, y = y or 0, z = z or 0} end
local function quat(x, y, z, w) return {x = x or 0, y = y or 0, z = z or 0, w = w or 1} end
local function vec3_add(a, b) return vec3(a.x + b.x, a.y + b.y, a.z + b.z) end
local function vec3_sub(a, b) return vec3(a.x - b.x, a.y - b.y, a.z - b.z) end
local function vec3_scale(v, s) return vec3(v.x * s, v.y * s, v.z * s) end
local function vec3_length(v) return live.sqrt(v.x * v.x + v.y * v.y + v.z * v.z) end
local function quat_from_yaw(angle)
    local half = angle / 2
    return quat(0, math.sin(half), 0, math.cos(half))
end
local function count(t)
    local n = 0
    for _ in pairs(t or {}) do n = n + 1 end
    return n
end
local function default(value, fallback)
    if value == nil then return fallback end
    return value
end
return %s
""" % ', '.join(PRELUDE_NAMES)

# Prepended to user code without a newline
PRELUDE_HEADER = 'local %s = ...; ' % ', '.join(PRELUDE_NAMES)
